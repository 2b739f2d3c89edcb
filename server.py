import argparse
import asyncio
import dataclasses
import json
import logging
import queue
import sys
from threading import Thread
from typing import Tuple

from bottle import Bottle, request, response, run

from blockdash.config import load_config
from blockdash.errors import DashboardError, NetworkError
from blockdash.main import Dashboard, build_dashboard, check_network
from blockdash.state import RefreshSink, RefreshState

logger = logging.getLogger("blockdash.server")


def create_app(dashboard: Dashboard) -> Bottle:
    """Build the bottle app serving the dashboard's refresh state."""
    app = Bottle()

    @app.route('/state')
    def state():
        response.content_type = 'application/json'
        return json.dumps(dashboard.sink.state.to_dict(compact=True))

    @app.route('/contract')
    def contract():
        response.content_type = 'application/json'
        return json.dumps(dashboard.contract.describe())

    @app.route('/state-stream')
    def state_stream():
        response.headers['Content-Type'] = 'text/event-stream'
        response.headers['Cache-Control'] = 'no-cache'
        response.headers['X-Accel-Buffering'] = 'no'  # Disable buffering for Nginx
        limit = request.query.get('limit')
        try:
            limit = int(limit) if limit else None
        except ValueError:
            response.status = 400
            return "event: error\ndata: limit must be an integer\n\n"
        return _stream_states(dashboard.sink, limit)

    return app


def _stream_states(sink: RefreshSink, limit=None, keepalive: float = 15.0):
    """Subscribe to ``sink`` and return a generator of server-sent events.

    Every refresh is queued, so none are lost between writes. The
    subscription is dropped when the generator finishes or is closed.
    """
    updates: "queue.Queue[RefreshState]" = queue.Queue()
    # Called from the poller's loop thread; Queue is thread-safe
    sink.subscribe(updates.put_nowait)

    def events():
        sent = 0
        try:
            while limit is None or sent < limit:
                try:
                    state = updates.get(timeout=keepalive)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                data = json.dumps(state.to_dict(compact=True))
                yield f"event: state\ndata: {data}\n\n"
                sent += 1
        finally:
            sink.unsubscribe(updates.put_nowait)

    return events()


def start_polling(dashboard: Dashboard) -> Tuple[asyncio.AbstractEventLoop, Thread]:
    """Run the poller on an event loop in a background thread.

    Checks the node's chain id first. A mismatch raises ``ConfigurationError``;
    an unreachable node only logs a warning and polling starts regardless.
    """
    loop = asyncio.new_event_loop()
    thread = Thread(target=loop.run_forever, name="blockdash-poller", daemon=True)
    thread.start()

    async def _start():
        try:
            chain_id = await check_network(dashboard)
        except NetworkError as e:
            logger.warning(f"Cannot verify network at {dashboard.config.provider_url}, polling anyway: {e}")
        else:
            logger.info(f"Connected to {dashboard.config.provider_url} (chain id {chain_id})")
        dashboard.poller.start()

    try:
        asyncio.run_coroutine_threadsafe(_start(), loop).result()
    except BaseException:
        asyncio.run_coroutine_threadsafe(dashboard.client.aclose(), loop).result(timeout=5)
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=5)
        raise
    return loop, thread


def stop_polling(dashboard: Dashboard, loop: asyncio.AbstractEventLoop, thread: Thread) -> None:
    asyncio.run_coroutine_threadsafe(dashboard.aclose(), loop).result(timeout=5)
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Serve block height and contract metadata for one contract')
    parser.add_argument('--config', help='JSON config file (default: $BLOCKDASH_CONFIG)')
    parser.add_argument('--network', help='Network preset name (development, ropsten)')
    parser.add_argument('--host', default='0.0.0.0')
    parser.add_argument('--port', type=int, default=8080)
    parser.add_argument('--interval', type=float, help='Poll interval in seconds (default: 20)')
    parser.add_argument('--timeout', type=float, help='Deadline for one poll cycle in seconds')
    parser.add_argument('--debug', action='store_true')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        config = load_config(args.config, network=args.network)
        if args.interval is not None:
            config = dataclasses.replace(config, poll_interval=args.interval)
        dashboard = build_dashboard(config, fetch_timeout=args.timeout)
        loop, thread = start_polling(dashboard)
    except DashboardError as e:
        logger.error(f"Cannot start dashboard: {e}")
        return 1

    try:
        run(create_app(dashboard), host=args.host, port=args.port, debug=args.debug)
    finally:
        stop_polling(dashboard, loop, thread)
    return 0


if __name__ == '__main__':
    sys.exit(main())
