# ui/sync_status.py
from __future__ import annotations

from typing import Optional

import flet as ft

from core.settings import UI
from services.notifications import SyncEvent
from services.sync_service import OfflineError, SyncQueueManager


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" + ("" if count == 1 else "s")


def format_notification(event: SyncEvent, count: Optional[int] = None) -> str:
    if event is SyncEvent.SYNCING:
        return f"Syncing {_plural(count or 0, 'change')}..."
    if event is SyncEvent.SYNCED:
        return f"Synced {_plural(count or 0, 'change')}"
    return "Sync failed. We'll try again when you're back online."


_EVENT_COLORS = {
    SyncEvent.SYNCING: UI.colors.syncing_bg,
    SyncEvent.SYNCED: UI.colors.synced_bg,
    SyncEvent.FAILED: UI.colors.failed_bg,
}


def show_snack(page, snack: ft.SnackBar) -> None:
    """Open ``snack`` across flet page APIs."""
    if hasattr(page, "open"):
        page.open(snack)
    elif hasattr(page, "show_dialog"):
        page.show_dialog(snack)
    else:
        page.snack_bar = snack
        snack.open = True
        page.update()


def build_snack(message: str, bgcolor: Optional[str] = None) -> ft.SnackBar:
    return ft.SnackBar(
        content=ft.Text(message, color=UI.colors.text),
        bgcolor=bgcolor,
        duration=UI.toast_duration_ms,
    )


class SyncToaster:
    """Turns sync notifications into snack bars."""

    def __init__(self, page, manager: SyncQueueManager):
        self.page = page
        self.manager = manager
        manager.notifier.subscribe(self.on_event)

    def on_event(self, event: SyncEvent, count: Optional[int] = None) -> None:
        show_snack(self.page, build_snack(format_notification(event, count), _EVENT_COLORS[event]))

    def detach(self) -> None:
        self.manager.notifier.unsubscribe(self.on_event)


class SyncStatusBar:
    def __init__(self, page, manager: SyncQueueManager):
        self.page = page
        self.manager = manager
        self.state_text = ft.Text()
        self.counts_text = ft.Text(color=UI.colors.offline_text)
        self.sync_btn = ft.TextButton("Sync now", on_click=lambda e: self.page.run_task(self.sync_now))
        self.retry_btn = ft.TextButton(
            "Retry failed", on_click=lambda e: self.page.run_task(self.retry_failed)
        )
        self.control = ft.Row(
            controls=[self.state_text, self.counts_text, self.sync_btn, self.retry_btn],
            spacing=12,
        )
        manager.notifier.subscribe(lambda event, count: self.refresh())
        manager.monitor.add_listener(lambda online: self.refresh())

    def refresh(self) -> None:
        status = self.manager.get_queue_status()
        self.state_text.value = "Online" if status.is_online else "Offline"
        parts = [f"{status.pending} pending"]
        if status.syncing:
            parts.append(f"{status.syncing} syncing")
        if status.failed:
            parts.append(f"{status.failed} failed")
        self.counts_text.value = " · ".join(parts)
        self.sync_btn.disabled = not status.is_online
        self.retry_btn.visible = status.failed > 0
        self.page.update()

    async def sync_now(self) -> None:
        try:
            await self.manager.force_sync_now()
        except OfflineError:
            show_snack(self.page, build_snack("You're offline. Changes will sync later.", UI.colors.failed_bg))
        self.refresh()

    async def retry_failed(self) -> None:
        await self.manager.retry_failed_operations()
        self.refresh()


__all__ = ["SyncStatusBar", "SyncToaster", "build_snack", "format_notification", "show_snack"]
