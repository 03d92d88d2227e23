"""
Tests for the operator permission session.
"""

import pytest

from fleetctl.core.permissions import Permission, PermissionService, parse_permissions


class TestPermissionService:

    @pytest.fixture
    def svc(self):
        return PermissionService()

    def test_logged_out_has_nothing(self, svc):
        assert not svc.is_logged_in
        assert not svc.has_control_capability()

    def test_login_grants(self, svc):
        svc.login("alice", {Permission.CONTROL_DEVICE})
        assert svc.is_logged_in
        assert svc.current_user == "alice"
        assert svc.has_control_capability()

    def test_all_does_not_imply_control(self, svc):
        svc.login("bob", {Permission.ALL})
        assert not svc.has_control_capability()

    def test_logout_clears(self, svc):
        svc.login("alice", {Permission.CONTROL_DEVICE})
        svc.logout()
        assert svc.permissions == frozenset()
        assert svc.current_user is None

    def test_listeners_notified(self, svc):
        events = []
        svc.subscribe(lambda: events.append(svc.has_control_capability()))
        svc.login("alice", {Permission.CONTROL_DEVICE})
        svc.set_permissions({Permission.VIEW_HOME})
        svc.logout()
        assert events == [True, False, False]

    def test_listener_error_contained(self, svc):
        calls = []

        def broken():
            raise RuntimeError("boom")

        svc.subscribe(broken)
        svc.subscribe(lambda: calls.append(1))
        svc.login("alice", set())
        assert calls == [1]

    def test_set_permissions_requires_login(self, svc):
        with pytest.raises(RuntimeError):
            svc.set_permissions({Permission.VIEW_HOME})


class TestParsePermissions:

    def test_value_and_name_forms(self):
        perms = parse_permissions(["ControlDevice", "view_home"])
        assert perms == {Permission.CONTROL_DEVICE, Permission.VIEW_HOME}

    def test_case_insensitive(self):
        assert parse_permissions(["controldevice"]) == {Permission.CONTROL_DEVICE}

    def test_unknown_rejected(self):
        with pytest.raises(ValueError):
            parse_permissions(["Admin"])
