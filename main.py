# liftfire/main.py
import os, sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
import flet as ft

from core.settings import APP_NAME, CONNECTIVITY, SUPABASE, UI
from services.connectivity import ConnectivityMonitor, ManualConnectivityFeed, TcpProbeFeed
from services.remote_apply import create_supabase_remote
from services.sync_service import SyncQueueManager
from services.workouts import WorkoutService
from storage.db import init_db
from ui.sync_status import SyncStatusBar, SyncToaster


async def main(page: ft.Page):
    page.title = UI.app_title
    page.theme_mode = UI.theme_mode
    page.theme = ft.Theme(color_scheme_seed=UI.color_scheme_seed)
    page.appbar = ft.AppBar(title=ft.Text(APP_NAME), center_title=False)

    init_db()

    if SUPABASE.enabled:
        remote = await create_supabase_remote(SUPABASE.url, SUPABASE.key)
        host, port = CONNECTIVITY.target(SUPABASE.url)
        feed = TcpProbeFeed(
            host,
            port,
            timeout=CONNECTIVITY.probe_timeout_sec,
            interval=CONNECTIVITY.probe_interval_sec,
        )
    else:
        # No backend configured: stay offline and keep everything queued.
        remote = None
        feed = ManualConnectivityFeed(online=False)

    manager = SyncQueueManager(remote, ConnectivityMonitor(feed))
    page.data = {"sync": manager, "workouts": WorkoutService(manager)}

    SyncToaster(page, manager)
    status_bar = SyncStatusBar(page, manager)
    page.add(status_bar.control)

    await manager.start()
    status_bar.refresh()


ft.app(target=main)
