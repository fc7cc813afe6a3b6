"""Tests for Container."""

import logging
import threading

import pytest

from notifyx import InitializationError, LifecycleError, ViewModel, set_scheduler


class TestMutation:
    def test_update_state_notifies_once(self, registry):
        c = registry.create_or_get("counter", lambda: 0)
        log = []
        c.add_listener(log.append)
        c.update_state(1)
        assert c.value == 1
        assert log == [1]

    def test_update_silently(self, registry):
        c = registry.create_or_get("counter", lambda: 0)
        log = []
        c.add_listener(log.append)
        c.update_silently(5)
        assert c.value == 5
        assert log == []

    def test_transform_composes(self, registry):
        c = registry.create_or_get("n", lambda: 3)
        log = []
        c.add_listener(log.append)
        c.transform_state(lambda v: v + 1)
        c.transform_state(lambda v: v * 10)
        assert c.value == 40
        assert log == [4, 40]

    def test_transform_silently(self, registry):
        c = registry.create_or_get("n", lambda: 3)
        log = []
        c.add_listener(log.append)
        c.transform_state_silently(lambda v: v - 3)
        assert c.value == 0
        assert log == []

    def test_listeners_in_registration_order(self, registry):
        c = registry.create_or_get("n", lambda: 0)
        order = []
        c.add_listener(lambda v: order.append("a"))
        c.add_listener(lambda v: order.append("b"))
        c.add_listener(lambda v: order.append("c"))
        c.update_state(1)
        assert order == ["a", "b", "c"]

    def test_same_listener_added_twice_fires_once(self, registry):
        c = registry.create_or_get("n", lambda: 0)
        log = []
        c.add_listener(log.append)
        c.add_listener(log.append)
        c.update_state(1)
        assert log == [1]

    def test_remove_listener(self, registry):
        c = registry.create_or_get("n", lambda: 0)
        log = []
        c.add_listener(log.append)
        c.remove_listener(log.append)
        c.remove_listener(log.append)  # already removed, no error
        c.update_state(1)
        assert log == []
        assert not c.has_listeners

    def test_version_counts_notifying_mutations(self, registry):
        c = registry.create_or_get("n", lambda: 0)
        c.update_state(1)
        c.update_silently(2)
        c.transform_state(lambda v: v + 1)
        assert c.version == 2

    def test_failing_listener_is_isolated(self, registry, caplog):
        c = registry.create_or_get("n", lambda: 0)
        log = []

        def _boom(value):
            raise RuntimeError("listener broke")

        c.add_listener(_boom)
        c.add_listener(log.append)
        with caplog.at_level(logging.ERROR, logger="notifyx.delivery"):
            c.update_state(7)
        assert log == [7]
        assert "listener broke" in caplog.text

    def test_disposed_container_rejects_mutation(self, registry):
        c = registry.create_or_get("n", lambda: 0)
        c.dispose()
        with pytest.raises(LifecycleError):
            c.update_state(1)
        with pytest.raises(LifecycleError):
            c.update_silently(1)
        with pytest.raises(LifecycleError):
            c.transform_state(lambda v: v)
        with pytest.raises(LifecycleError):
            c.add_listener(lambda v: None)

    def test_viewmodel_container_rejects_direct_mutation(self, registry):
        c = registry.create_or_get("vm", lambda: ViewModel(0))
        with pytest.raises(TypeError):
            c.update_state(1)


class TestReferences:
    def test_counter_scenario(self, registry):
        factory = lambda: 0  # noqa: E731
        c = registry.create_or_get("counter", factory, auto_dispose=True)
        log = []
        c.add_listener(log.append)
        c.update_state(1)
        c.update_state(2)
        assert c.value == 2
        assert len(log) == 2

        c.add_reference("A")
        c.add_reference("B")
        c.remove_reference("A")
        assert not c.disposed
        assert c.ref_count == 1

        c.remove_reference("B")
        assert c.disposed
        assert "counter" not in registry

        fresh = registry.create_or_get("counter", factory)
        assert fresh is not c
        assert fresh.value == 0

    def test_without_auto_dispose_stays_alive(self, registry):
        c = registry.create_or_get("n", lambda: 0)
        c.add_reference("A")
        c.remove_reference("A")
        assert not c.disposed
        assert c.ref_count == 0

    def test_duplicate_reference_counts_once(self, registry):
        c = registry.create_or_get("n", lambda: 0, auto_dispose=True)
        c.add_reference("A")
        c.add_reference("A")
        assert c.ref_count == 1
        c.remove_reference("A")
        assert c.disposed

    def test_add_reference_on_disposed_raises(self, registry):
        c = registry.create_or_get("n", lambda: 0)
        c.dispose()
        with pytest.raises(LifecycleError):
            c.add_reference("A")

    def test_auto_dispose_disposes_viewmodel_once(self, registry):
        disposals = []

        class Tracked(ViewModel[int]):
            def __init__(self):
                super().__init__(0)

            def remove_listeners(self):
                disposals.append(self.id)

        c = registry.create_or_get("vm", Tracked, auto_dispose=True)
        vm = c.value
        c.add_reference("A")
        c.remove_reference("A")
        c.dispose()
        vm.dispose()
        assert disposals == [vm.id]
        assert vm.is_disposed


class TestDispose:
    def test_dispose_is_idempotent(self, registry):
        c = registry.create_or_get("n", lambda: 0)
        log = []
        c.add_listener(log.append)
        c.dispose()
        c.dispose()
        assert c.disposed
        assert not c.has_listeners
        assert "n" not in registry

    def test_recreate_after_dispose(self, registry):
        calls = []

        def factory():
            calls.append(1)
            return len(calls) * 100

        c = registry.create_or_get("n", factory, auto_dispose=True)
        c.add_reference("A")
        c.dispose()
        assert c.recreate() == 200
        assert c.value == 200
        assert not c.disposed
        assert c.ref_count == 0
        assert registry.get("n") is c

        c.add_reference("B")
        c.remove_reference("B")
        assert c.disposed

    def test_recreate_live_container_notifies(self, registry):
        c = registry.create_or_get("n", lambda: [])
        log = []
        c.add_listener(log.append)
        c.update_state([1])
        c.recreate()
        assert c.value == []
        assert log == [[1], []]

    def test_recreate_live_viewmodel_disposes_old(self, registry):
        c = registry.create_or_get("vm", lambda: ViewModel("x"))
        old = c.value
        c.recreate()
        assert old.is_disposed
        assert c.value is not old
        assert c.holds_viewmodel


class TestFactory:
    def test_factory_called_once(self, registry):
        calls = []

        def factory():
            calls.append(1)
            return "v"

        a = registry.create_or_get("k", factory)
        b = registry.create_or_get("k", factory)
        assert a is b
        assert calls == [1]

    def test_raising_factory_registers_nothing(self, registry):
        def factory():
            raise ValueError("nope")

        with pytest.raises(InitializationError) as info:
            registry.create_or_get("k", factory)
        assert isinstance(info.value.__cause__, ValueError)
        assert info.value.key == "k"
        assert "k" not in registry
        assert len(registry) == 0


class TestViewModelForwarding:
    def test_viewmodel_changes_reach_container_listeners(self, registry):
        c = registry.create_or_get("vm", lambda: ViewModel(0))
        log = []
        c.add_listener(log.append)
        c.value.update_state(5)
        assert log == [5]
        assert c.current == 5
        assert c.version == 1


class TestRelated:
    def test_related_change_notifies(self, registry):
        user = registry.create_or_get("user", lambda: "alice")
        cart = registry.create_or_get("cart", lambda: [])
        page = registry.create_or_get("page", lambda: "home", related=[user, cart])
        log = []
        page.add_listener(log.append)
        user.update_state("bob")
        cart.update_silently([1])
        cart.update_state([1, 2])
        assert log == ["home", "home"]
        assert page.related == (user, cart)

    def test_disposed_container_detaches_from_related(self, registry):
        user = registry.create_or_get("user", lambda: "alice")
        page = registry.create_or_get("page", lambda: "home", related=[user])
        page.dispose()
        assert not user.has_listeners


class TestScheduler:
    def test_background_mutation_is_marshaled(self, registry):
        c = registry.create_or_get("n", lambda: 0)
        scheduled = []
        set_scheduler(scheduled.append)
        try:
            t = threading.Thread(target=lambda: c.update_state(5))
            t.start()
            t.join()
            assert c.value == 0
            assert len(scheduled) == 1

            scheduled[0]()
            assert c.value == 5

            c.update_state(6)  # main thread stays synchronous
            assert c.value == 6
            assert len(scheduled) == 1
        finally:
            set_scheduler(None)
