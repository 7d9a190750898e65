from sessions import SessionRegistry


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_create_and_get():
    registry = SessionRegistry()
    session = registry.create()
    assert registry.get(session.id) is session
    assert registry.get("unknown") is None
    assert len(registry) == 1


def test_idle_sessions_expire():
    clock = FakeClock()
    registry = SessionRegistry(idle_minutes=1, clock=clock)
    session = registry.create()

    clock.now += 30
    assert registry.get(session.id) is session
    clock.now += 50
    assert registry.get(session.id) is session

    clock.now += 61
    assert registry.get(session.id) is None
    assert len(registry) == 0


def test_create_prunes_expired_sessions():
    clock = FakeClock()
    registry = SessionRegistry(idle_minutes=1, clock=clock)
    for _ in range(5):
        registry.create()
    clock.now += 120
    registry.create()
    assert len(registry) == 1


def test_oldest_session_evicted_at_capacity():
    registry = SessionRegistry(max_sessions=3)
    first, second, third = registry.create(), registry.create(), registry.create()
    registry.get(first.id)

    fourth = registry.create()
    assert len(registry) == 3
    assert registry.get(second.id) is None
    assert all(registry.get(s.id) is s for s in (first, third, fourth))


def test_discard():
    registry = SessionRegistry()
    session = registry.create("fixed-id")
    assert session.id == "fixed-id"
    registry.discard("fixed-id")
    assert registry.get("fixed-id") is None
