from aiohttp import web
import html
import logging

from config import StartupFatalError

logger = logging.getLogger(__name__)

NODE_KEY = web.AppKey("node", object)

# ==========================================
# NODE STATUS PAGE
# ==========================================
STATUS_HTML = """
<!DOCTYPE html>
<html>
<head>
    <title>Song Node {peer_id}</title>
    <style>
        body {{ background-color: #1e1e1e; color: #00ff00; font-family: monospace; padding: 20px; }}
        .card {{ border: 1px solid #333; padding: 15px; margin-bottom: 20px; border-radius: 5px; background: #252526; }}
        h1, h2 {{ color: #00ff00; text-shadow: 0 0 5px #00ff00; }}
        .stat-value {{ font-size: 1.5em; font-weight: bold; }}
        ul {{ list-style-type: none; padding: 0; }}
        li {{ padding: 5px 0; border-bottom: 1px solid #333; }}
    </style>
</head>
<body>
    <h1>Song Node</h1>
    <div class="card">
        <h2>Identity</h2>
        <div>Peer Id: <span class="stat-value">{peer_id}</span></div>
        <div>Topic: {topic}</div>
        <div>Uptime: {uptime} s</div>
    </div>
    <div class="card">
        <h2>Catalog</h2>
        <div>Songs: <span class="stat-value">{songs}</span></div>
        <div>Public: <span class="stat-value">{public_songs}</span></div>
        <div>Revision: {catalog_revision}</div>
        <div>Last Error: {last_error}</div>
    </div>
    <div class="card">
        <h2>Peers ({peer_count})</h2>
        <ul>{peer_items}</ul>
    </div>
    <p>Raw counters: <a href="/api/stats">/api/stats</a></p>
</body>
</html>
"""


async def handle_index(request):
    stats = request.app[NODE_KEY].get_stats()
    fields = {k: html.escape(str(v)) for k, v in stats.items() if not isinstance(v, (list, dict))}
    fields["peer_items"] = "".join(f"<li>{html.escape(p)}</li>" for p in stats["peers"])
    return web.Response(text=STATUS_HTML.format(**fields), content_type='text/html')


async def handle_stats(request):
    stats = request.app[NODE_KEY].get_stats()
    return web.json_response(stats)


def create_app(node) -> web.Application:
    app = web.Application()
    app[NODE_KEY] = node
    app.router.add_get('/', handle_index)
    app.router.add_get('/api/stats', handle_stats)
    return app


async def start_dashboard(node, port=8888, host='127.0.0.1') -> web.AppRunner:
    runner = web.AppRunner(create_app(node))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    try:
        await site.start()
    except OSError as e:
        await runner.cleanup()
        raise StartupFatalError(f"cannot serve dashboard on {host}:{port}: {e}") from e
    logger.info(f"Dashboard started at http://{host}:{port}")
    return runner
