import asyncio

from models.sync_op import OperationType
from services.notifications import SyncEvent
from ui.sync_status import SyncStatusBar, SyncToaster, format_notification


class FakePage:
    def __init__(self):
        self.opened = []
        self.updates = 0
        self.tasks = []

    def open(self, control):
        self.opened.append(control)

    def update(self):
        self.updates += 1

    def run_task(self, handler, *args):
        self.tasks.append(handler)


def test_notification_messages():
    assert format_notification(SyncEvent.SYNCING, 3) == "Syncing 3 changes..."
    assert format_notification(SyncEvent.SYNCED, 1) == "Synced 1 change"
    assert format_notification(SyncEvent.SYNCED, 2) == "Synced 2 changes"
    assert format_notification(SyncEvent.FAILED) == (
        "Sync failed. We'll try again when you're back online."
    )


def test_toaster_shows_a_snack_per_event(manager):
    page = FakePage()
    toaster = SyncToaster(page, manager)

    manager.notifier.emit(SyncEvent.SYNCED, 2)
    assert page.opened[-1].content.value == "Synced 2 changes"

    toaster.detach()
    manager.notifier.emit(SyncEvent.FAILED)
    assert len(page.opened) == 1


def test_status_bar_reflects_queue_and_connectivity(manager, store, feed):
    page = FakePage()
    bar = SyncStatusBar(page, manager)
    store.add(OperationType.DELETE_WORKOUT, "w1", {})
    failed = store.add(OperationType.DELETE_WORKOUT, "w2", {})
    store.claim(failed.id)
    store.record_failure(failed.id, "x", permanent=True)

    bar.refresh()
    assert bar.state_text.value == "Offline"
    assert bar.counts_text.value == "1 pending · 1 failed"
    assert bar.sync_btn.disabled is True
    assert bar.retry_btn.visible is True

    async def scenario():
        await manager.monitor.start()
        manager.monitor.handle_change(True)
        await manager.wait_idle()

    asyncio.run(scenario())
    assert bar.state_text.value == "Online"
    assert bar.sync_btn.disabled is False


def test_sync_now_while_offline_tells_the_user(manager):
    page = FakePage()
    bar = SyncStatusBar(page, manager)

    asyncio.run(bar.sync_now())
    assert "offline" in page.opened[-1].content.value
