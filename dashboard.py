"""Web dashboard for the EcoFinance notification center"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse, Response

from ecofinance import __version__
from ecofinance.notifications.models import NotificationPayload
from ecofinance.notifications.pipeline import NotificationPipeline
from ecofinance.notifications.routes import router as notifications_router
from ecofinance.toasts.models import ToastEvent
from ecofinance.toasts.routes import router as toasts_router

logger = logging.getLogger(__name__)


class DashboardManager:
    """Manages WebSocket connections to dashboard clients"""

    def __init__(self):
        self.active_connections: list[WebSocket] = []
        self.pipeline: Optional[NotificationPipeline] = None

    def set_pipeline(self, pipeline: NotificationPipeline):
        """Set the notification pipeline and register callbacks"""
        self.pipeline = pipeline
        pipeline.store.on_notification(self._on_notification)
        if pipeline.toasts is not None:
            pipeline.toasts.subscribe(self._on_toast_event)

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info(f"Dashboard client connected. Total: {len(self.active_connections)}")

        # Send current state
        if self.pipeline:
            await websocket.send_json({
                "type": "state",
                "data": self.get_state(),
            })

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        logger.info(f"Dashboard client disconnected. Total: {len(self.active_connections)}")

    async def broadcast(self, message: dict):
        """Broadcast message to all connected clients"""
        for connection in list(self.active_connections):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.error(f"Broadcast error: {e}")

    def _schedule(self, message: dict):
        if not self.active_connections:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Called outside the event loop (e.g. from a worker thread)
            return
        loop.create_task(self.broadcast(message))

    def _on_notification(self, notification: NotificationPayload):
        """Handle a notification entering the inbox"""
        self._schedule({
            "type": "notification",
            "data": notification.model_dump(mode="json"),
            "unread_count": self.pipeline.store.unread_count if self.pipeline else 0,
        })

    def _on_toast_event(self, event: ToastEvent):
        """Handle toast lifecycle changes"""
        self._schedule({
            "type": "toast",
            "data": event.to_dict(),
        })

    def get_state(self) -> dict:
        if not self.pipeline:
            return {}
        store = self.pipeline.store
        return {
            "notifications": [n.model_dump(mode="json") for n in store.get_notifications()],
            "statistics": store.get_statistics(),
            "toasts": self.pipeline.toasts.get_state() if self.pipeline.toasts else None,
            "rules": self.pipeline.engine.get_state(),
        }


def create_app(pipeline: Optional[NotificationPipeline] = None, run_background: bool = True) -> FastAPI:
    """
    Build the FastAPI application around a pipeline.

    Args:
        pipeline: Wired notification pipeline (see create_pipeline)
        run_background: Start the toast ticker and maintenance loop with the app
    """
    manager = DashboardManager()
    if pipeline is not None:
        manager.set_pipeline(pipeline)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """FastAPI lifespan handler"""
        if pipeline is not None and run_background:
            await pipeline.start()
        yield
        if pipeline is not None and run_background:
            await pipeline.close()

    app = FastAPI(title="EcoFinance Notifications", version=__version__, lifespan=lifespan)
    app.state.pipeline = pipeline
    app.state.manager = manager

    app.include_router(notifications_router)
    app.include_router(toasts_router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await manager.connect(websocket)
        try:
            while True:
                # Keep connection alive, handle any client messages
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_text("pong")
        except WebSocketDisconnect:
            manager.disconnect(websocket)

    @app.get("/api/state")
    async def get_state():
        """Get current notification center state"""
        if not manager.pipeline:
            return {"error": "Pipeline not initialized"}
        return manager.get_state()

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint"""
        if pipeline is None or pipeline.metrics is None:
            return Response(status_code=404)
        return Response(
            content=pipeline.metrics.get_prometheus_metrics(),
            media_type=pipeline.metrics.get_prometheus_content_type(),
        )

    @app.get("/", response_class=HTMLResponse)
    async def dashboard():
        """Serve the dashboard HTML"""
        return DASHBOARD_HTML

    return app


DASHBOARD_HTML = """
<!DOCTYPE html>
<html lang="pt-BR">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>EcoFinance Notifications</title>
    <style>
        :root {
            --bg-primary: #0a0b0f;
            --bg-card: #15171e;
            --border-color: #2a2d3a;
            --text-primary: #e8eaed;
            --text-muted: #5f6368;
            --accent-green: #00d26a;
            --accent-red: #ff4757;
            --accent-blue: #00b4d8;
            --accent-yellow: #ffd43b;
        }

        * { margin: 0; padding: 0; box-sizing: border-box; }

        body {
            font-family: sans-serif;
            background: var(--bg-primary);
            color: var(--text-primary);
            min-height: 100vh;
        }

        .container { max-width: 960px; margin: 0 auto; padding: 24px; }

        header {
            display: flex;
            justify-content: space-between;
            align-items: center;
            padding-bottom: 24px;
            border-bottom: 1px solid var(--border-color);
            margin-bottom: 24px;
        }

        .badge {
            padding: 6px 14px;
            border-radius: 100px;
            background: var(--bg-card);
            border: 1px solid var(--border-color);
        }

        .notification {
            background: var(--bg-card);
            border: 1px solid var(--border-color);
            border-radius: 12px;
            padding: 16px;
            margin-bottom: 12px;
        }

        .notification.unread { border-left: 3px solid var(--accent-blue); }
        .notification.urgent { border-left: 3px solid var(--accent-red); }
        .notification .meta { font-size: 12px; color: var(--text-muted); margin-top: 6px; }

        #toasts {
            position: fixed;
            right: 16px;
            bottom: 16px;
            display: flex;
            flex-direction: column;
            gap: 8px;
            width: 320px;
        }

        .toast {
            padding: 12px 16px;
            border-radius: 10px;
            background: var(--bg-card);
            border: 1px solid var(--border-color);
        }

        .toast.success { border-color: var(--accent-green); }
        .toast.warning { border-color: var(--accent-yellow); }
        .toast.error, .toast.delete { border-color: var(--accent-red); }
        .toast.info { border-color: var(--accent-blue); }
    </style>
</head>
<body>
    <div class="container">
        <header>
            <h1>Notificações</h1>
            <span class="badge" id="unread">0 não lidas</span>
        </header>
        <div id="list"></div>
    </div>
    <div id="toasts"></div>

    <script>
        let notifications = [];
        let toasts = {};
        let ws = null;

        function connect() {
            const protocol = window.location.protocol === 'https:' ? 'wss:' : 'ws:';
            ws = new WebSocket(`${protocol}//${window.location.host}/ws`);
            ws.onclose = () => setTimeout(connect, 3000);
            ws.onmessage = (event) => handleMessage(JSON.parse(event.data));
        }

        function handleMessage(message) {
            switch (message.type) {
                case 'state':
                    notifications = message.data.notifications || [];
                    setUnread(message.data.statistics ? message.data.statistics.unread : 0);
                    renderList();
                    break;
                case 'notification':
                    notifications.unshift(message.data);
                    notifications = notifications.slice(0, 100);
                    setUnread(message.unread_count);
                    renderList();
                    break;
                case 'toast':
                    const t = message.data.toast;
                    if (message.data.kind === 'removed') {
                        delete toasts[t.id];
                    } else if (t.state === 'visible') {
                        toasts[t.id] = t;
                    }
                    renderToasts();
                    break;
            }
        }

        function setUnread(count) {
            document.getElementById('unread').textContent = `${count} não lidas`;
        }

        function renderList() {
            document.getElementById('list').innerHTML = notifications.map(n => `
                <div class="notification ${n.status !== 'read' ? 'unread' : ''} ${n.priority === 'urgent' ? 'urgent' : ''}">
                    <strong>${n.title}</strong>
                    <div>${n.message}</div>
                    <div class="meta">${n.category} · ${new Date(n.timestamp).toLocaleString()}</div>
                </div>
            `).join('');
        }

        function renderToasts() {
            document.getElementById('toasts').innerHTML = Object.values(toasts).map(t => `
                <div class="toast ${t.type}"><strong>${t.title}</strong><div>${t.message}</div></div>
            `).join('');
        }

        connect();

        setInterval(() => {
            if (ws && ws.readyState === WebSocket.OPEN) {
                ws.send('ping');
            }
        }, 30000);
    </script>
</body>
</html>
"""
