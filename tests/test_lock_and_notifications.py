import pytest

from storefront.domain.errors import StateConflictError
from storefront.services.lock_service import LockService
from storefront.services.notification_service import send_order_notification_task


class FakeRedis:
    """Just enough of redis.Redis for SET NX EX and the release script."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def set(self, name, value, nx=False, ex=None):
        if nx and name in self.data:
            return None
        self.data[name] = value
        self.ttls[name] = ex
        return True

    def eval(self, script, numkeys, key, token):
        if self.data.get(key) == token:
            del self.data[key]
            return 1
        return 0


def test_order_lock_is_exclusive_and_released():
    client = FakeRedis()
    locks = LockService(client=client)

    with locks.order_lock(7):
        assert "order:7:lock" in client.data
        assert client.ttls["order:7:lock"] == 30
        with pytest.raises(StateConflictError):
            with locks.order_lock(7):
                pass

    assert client.data == {}


def test_release_only_by_owner():
    client = FakeRedis()
    locks = LockService(client=client)

    assert locks.acquire_order_lock(1, "a") is True
    assert locks.acquire_order_lock(1, "b") is False
    assert locks.release_order_lock(1, "b") is False
    assert locks.release_order_lock(1, "a") is True


def test_lock_released_when_body_fails():
    client = FakeRedis()
    locks = LockService(client=client)

    with pytest.raises(RuntimeError):
        with locks.order_lock(3):
            raise RuntimeError("boom")
    assert client.data == {}


def test_notification_task_reports_order_total():
    result = send_order_notification_task.apply(args=(1, 42, 71800, "inr")).get()
    assert result == {"user_id": 1, "order_id": 42, "total": "718.00 INR", "status": "sent"}
