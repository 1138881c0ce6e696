"""
test_delivery_base.py — Tests for delivery classes: line resolution,
registry inheritance and fan-out dispatch.

Covers:
    • Convention, explicit, pattern and custom handler resolution
    • Abstract classes and inheritance fallback
    • register_line / unregister_line isolation between classes
    • Deferred vs synchronous dispatch, params and enqueue options
    • Missing handlers or actions skipped silently
    • Strict mode (declared actions only)
    • Failure isolation between lines

Run with:
    pytest tests/test_delivery_base.py -v
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from herald.core.config import override_settings
from herald.core.errors import ConfigurationError, LineDispatchError, StrictDispatchError
from herald.core.naming import qualified_name
from herald.delivery import BaseDelivery, Delivery, Line, MailerLine, NotifierLine
from herald.jobs.adapters import use_adapter
from herald.mailer import Mailer
from herald.mailer import testing as mailer_testing
from herald.notifier import Notifier
from herald.notifier import testing as notifier_testing


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

PROFILE = {"email": "ann@example.com", "name": "Ann"}


class ApplicationDelivery(BaseDelivery, abstract=True):
    pass


class ApplicationMailer(Mailer):
    pass


class ApplicationNotifier(Notifier):
    pass


class EventsDelivery(ApplicationDelivery):
    pass


EventsDelivery.delivers("canceled")


class EventsMailer(ApplicationMailer):
    def canceled(self, event):
        return self.mail(to=self.params["profile"]["email"], subject=f"{event} canceled")

    def invited(self, event):
        return self.mail(to=self.params["profile"]["email"], subject=f"Join {event}")


class EventsNotifier(ApplicationNotifier):
    def canceled(self, event):
        return self.notification(body=f"{event} canceled", to=self.params["profile"]["name"])


class ChildEventsDelivery(EventsDelivery):
    pass


class OnlyMailDelivery(ApplicationDelivery):
    pass


class OnlyMailMailer(Mailer):
    def canceled(self, event):
        return self.mail(to="x@example.com", subject=f"{event} canceled")


class OnlyMailNotifier(Notifier):
    def rescheduled(self, event):
        return self.notification(body=f"{event} moved")


def _job_targets(adapter):
    return [
        (job.handler_class_name.rsplit(".", 1)[-1], job.action_name)
        for job in adapter.jobs
    ]


# ═══════════════════════════════════════════════════════════════════════════
# Handler resolution
# ═══════════════════════════════════════════════════════════════════════════

class TestResolution:

    def test_default_lines(self):
        assert list(EventsDelivery.delivery_lines()) == ["mailer", "notifier"]
        assert isinstance(EventsDelivery.delivery_lines()["mailer"], MailerLine)
        assert isinstance(EventsDelivery.delivery_lines()["notifier"], NotifierLine)

    def test_convention(self):
        assert EventsDelivery.mailer_class() is EventsMailer
        assert EventsDelivery.notifier_class() is EventsNotifier

    def test_abstract_resolves_nothing(self):
        assert ApplicationDelivery.is_abstract_class()
        assert ApplicationDelivery.mailer_class() is None
        assert ApplicationDelivery.notifier_class() is None

    def test_abstract_not_inherited(self):
        assert not EventsDelivery.is_abstract_class()

    def test_falls_back_to_parent(self):
        assert ChildEventsDelivery.mailer_class() is EventsMailer
        assert ChildEventsDelivery.notifier_class() is EventsNotifier

    def test_lines_rebound_to_subclass(self):
        line = ChildEventsDelivery.delivery_lines()["mailer"]
        assert line.owner is ChildEventsDelivery
        assert line is not EventsDelivery.delivery_lines()["mailer"]

    def test_unresolved_is_none(self):
        class LonelyDelivery(ApplicationDelivery):
            pass

        assert LonelyDelivery.mailer_class() is None
        assert LonelyDelivery.notifier_class() is None

    def test_name_without_suffix_is_none(self):
        class Announcements(ApplicationDelivery):
            pass

        assert Announcements.mailer_class() is None

    def test_explicit_handler(self):
        class CustomDelivery(ApplicationDelivery):
            pass

        CustomDelivery.mailer(EventsMailer)
        CustomDelivery.notifier(qualified_name(EventsNotifier))

        assert CustomDelivery.mailer() is EventsMailer
        assert CustomDelivery.mailer_class() is EventsMailer
        assert CustomDelivery.notifier_class() is EventsNotifier

    def test_explicit_handler_not_copied_to_subclass(self):
        class CustomDelivery(ApplicationDelivery):
            pass

        CustomDelivery.mailer(EventsMailer)

        class SubCustomDelivery(CustomDelivery):
            pass

        assert SubCustomDelivery.mailer() is None
        assert SubCustomDelivery.mailer_class() is EventsMailer

    def test_explicit_missing_name_is_none(self):
        class CustomDelivery(ApplicationDelivery):
            pass

        CustomDelivery.mailer("nowhere.GhostMailer")
        assert CustomDelivery.mailer_class() is None

    def test_explicit_handler_on_abstract_base_inherited(self):
        class SharedNotifier(Notifier):
            def canceled(self, event):
                return self.notification(body=f"{event} canceled")

        class BaseAppDelivery(BaseDelivery, abstract=True):
            pass

        BaseAppDelivery.notifier(SharedNotifier)

        class ShowsDelivery(BaseAppDelivery):
            pass

        class MatineeShowsDelivery(ShowsDelivery):
            pass

        assert BaseAppDelivery.notifier_class() is None
        assert ShowsDelivery.notifier_class() is SharedNotifier
        assert MatineeShowsDelivery.notifier_class() is SharedNotifier

        ShowsDelivery.notify_now("canceled", "Gala")
        notifier_testing.assert_notification_sent(count=1, via=SharedNotifier)

    def test_abstract_middle_class_passes_parent_handler(self):
        class RootDelivery(ApplicationDelivery):
            pass

        RootDelivery.mailer(EventsMailer)

        class MiddleDelivery(RootDelivery, abstract=True):
            pass

        class LeafDelivery(MiddleDelivery):
            pass

        assert MiddleDelivery.mailer_class() is None
        assert LeafDelivery.mailer_class() is EventsMailer

    def test_memoized_with_cache(self):
        class LateDelivery(ApplicationDelivery):
            pass

        assert LateDelivery.notifier_class() is None

        class LateNotifier(Notifier):
            pass

        assert LateDelivery.notifier_class() is None

    def test_not_memoized_without_cache(self):
        with override_settings(CACHE_CLASSES=False):
            class ReloadDelivery(ApplicationDelivery):
                pass

            assert ReloadDelivery.notifier_class() is None

            class ReloadNotifier(Notifier):
                pass

            assert ReloadDelivery.notifier_class() is ReloadNotifier


# ═══════════════════════════════════════════════════════════════════════════
# Line registry
# ═══════════════════════════════════════════════════════════════════════════

class QuackLine(Line):
    calls = []

    def notify_now(self, handler, action, *args, **kwargs):
        QuackLine.calls.append(("now", handler, action, args, kwargs))

    def notify_later(self, handler, action, *args, **kwargs):
        QuackLine.calls.append(("later", handler, action, args, kwargs))


class Duck:
    def quack(self, volume):
        return volume


class TestLineRegistry:

    def setup_method(self):
        QuackLine.calls.clear()

    def test_custom_line_class(self):
        class PondDelivery(ApplicationDelivery):
            pass

        PondDelivery.register_line("quack", QuackLine, resolver=lambda owner: Duck)
        assert PondDelivery.quack_class() is Duck

        PondDelivery.notify_now("quack", 11, pitch="high")
        PondDelivery.notify("quack", 3)

        assert QuackLine.calls == [
            ("now", Duck, "quack", (11,), {"pitch": "high"}),
            ("later", Duck, "quack", (3,), {}),
        ]

    def test_register_does_not_touch_parent(self):
        class PondDelivery(ApplicationDelivery):
            pass

        PondDelivery.register_line("quack", QuackLine, resolver=lambda owner: Duck)
        assert "quack" not in ApplicationDelivery.delivery_lines()
        assert "quack" not in BaseDelivery.delivery_lines()
        assert not hasattr(ApplicationDelivery, "quack_class")

    def test_subclass_inherits_registered_line(self):
        class PondDelivery(ApplicationDelivery):
            pass

        PondDelivery.register_line("quack", QuackLine, resolver=lambda owner: Duck)

        class LakeDelivery(PondDelivery):
            pass

        assert LakeDelivery.quack_class() is Duck
        assert LakeDelivery.delivery_lines()["quack"].owner is LakeDelivery

    def test_notifier_line_shortcut(self):
        class PushDelivery(ApplicationDelivery):
            pass

        line = PushDelivery.register_line("push", notifier=True)
        assert isinstance(line, NotifierLine)
        assert "push" in PushDelivery.callback_scopes()

    def test_line_class_required(self):
        with pytest.raises(ConfigurationError, match="Either line class"):
            EventsDelivery.register_line("pigeon")

    def test_suffix_option(self):
        class SmsDelivery(ApplicationDelivery):
            pass

        class SmsTextNotifier(Notifier):
            pass

        SmsDelivery.register_line("text", notifier=True, suffix="TextNotifier")
        assert SmsDelivery.text_class() is SmsTextNotifier

    def test_resolver_pattern(self):
        class AlertsDelivery(ApplicationDelivery):
            pass

        class AlertsPushNotifier(Notifier):
            pass

        AlertsDelivery.register_line(
            "push", notifier=True,
            resolver_pattern="{delivery_namespace}{delivery_name}PushNotifier",
        )
        assert AlertsDelivery.push_class() is AlertsPushNotifier

    def test_unregister_own_line(self):
        class PondDelivery(ApplicationDelivery):
            pass

        PondDelivery.register_line("quack", QuackLine, resolver=lambda owner: Duck)

        class LakeDelivery(PondDelivery):
            pass

        LakeDelivery.delivery_lines()
        PondDelivery.unregister_line("quack")

        assert "quack" not in PondDelivery.delivery_lines()
        assert not hasattr(PondDelivery, "quack_class")
        assert "quack" in LakeDelivery.delivery_lines()

    def test_unregister_inherited_line(self):
        class NoMailDelivery(EventsDelivery):
            pass

        NoMailDelivery.unregister_line("mailer")

        assert list(NoMailDelivery.delivery_lines()) == ["notifier"]
        assert NoMailDelivery.mailer_class() is None
        assert EventsDelivery.mailer_class() is EventsMailer

    def test_unregister_unknown_is_noop(self):
        EventsDelivery.unregister_line("pigeon")
        assert list(EventsDelivery.delivery_lines()) == ["mailer", "notifier"]


# ═══════════════════════════════════════════════════════════════════════════
# Dispatch
# ═══════════════════════════════════════════════════════════════════════════

class TestDispatch:

    def test_notify_enqueues_once_per_line(self, memory_adapter):
        EventsDelivery.with_(profile=PROFILE).notify("canceled", "Gala")

        assert _job_targets(memory_adapter) == [
            ("EventsMailer", "canceled"),
            ("EventsNotifier", "canceled"),
        ]
        for job in memory_adapter.jobs:
            assert job.params == {"profile": PROFILE}
            assert job.args == ["Gala"]

    def test_missing_action_skipped(self, memory_adapter):
        OnlyMailDelivery.notify("canceled", "Gala")
        assert _job_targets(memory_adapter) == [("OnlyMailMailer", "canceled")]

    def test_no_line_supports_action(self, memory_adapter):
        OnlyMailDelivery.notify("vanished", "Gala")
        assert memory_adapter.jobs == []

    def test_notify_now_is_synchronous(self):
        EventsDelivery.with_(profile=PROFILE).notify_now("canceled", "Gala")

        message, = mailer_testing.outbox()
        assert message.subject == "Gala canceled"
        notifier_testing.assert_notification_sent(count=1, via=EventsNotifier, to="Ann")
        assert mailer_testing.enqueued() == []
        assert notifier_testing.enqueued_deliveries() == []

    def test_notify_now_skips_enqueue_primitive(self):
        with patch.object(MailerLine, "notify_later") as later, \
                patch.object(MailerLine, "notify_now") as now:
            EventsDelivery.with_(profile=PROFILE).notify_now("canceled", "Gala")

        later.assert_not_called()
        handler, action, event = now.call_args.args
        assert action == "canceled" and event == "Gala"

    def test_build_returns_record(self):
        delivery = EventsDelivery.with_(profile=PROFILE).canceled("Gala")
        assert isinstance(delivery, Delivery)
        assert delivery.notification == "canceled"
        assert delivery.args == ("Gala",)
        assert dict(delivery.params) == {"profile": PROFILE}
        assert delivery.delivery_class is EventsDelivery
        assert "created_at" in delivery.metadata

    def test_params_immutable(self):
        delivery = EventsDelivery.with_(profile=PROFILE)
        with pytest.raises(TypeError):
            delivery.params["profile"] = None

    def test_deliver_later_with_options(self, memory_adapter):
        EventsDelivery.with_(profile=PROFILE).canceled("Gala").deliver_later(queue="urgent")
        assert [job.options["queue"] for job in memory_adapter.jobs] == ["urgent", "urgent"]

    def test_dynamic_action_permissive(self, memory_adapter):
        EventsDelivery.with_(profile=PROFILE).invited("Gala").deliver_later()
        assert _job_targets(memory_adapter) == [("EventsMailer", "invited")]

    def test_unknown_dynamic_action(self):
        with pytest.raises(AttributeError, match="no notification 'vanished'"):
            EventsDelivery.with_().vanished

    def test_class_level_declared_action(self):
        delivery = EventsDelivery.canceled("Gala")
        assert delivery.owner.params == {}
        assert delivery.notification == "canceled"

    def test_declared_actions_inherited(self):
        assert "canceled" in ChildEventsDelivery.declared_actions()
        assert "canceled" not in ApplicationDelivery.declared_actions()


class TestStrictMode:

    def test_declared_action_allowed(self, memory_adapter):
        with override_settings(DELIVER_ACTIONS_REQUIRED=True):
            EventsDelivery.with_(profile=PROFILE).notify("canceled", "Gala")
        assert len(memory_adapter.jobs) == 2

    def test_undeclared_action_rejected(self):
        with override_settings(DELIVER_ACTIONS_REQUIRED=True):
            with pytest.raises(StrictDispatchError, match="delivers\\('invited'\\)"):
                EventsDelivery.with_(profile=PROFILE).notify("invited", "Gala")

    def test_undeclared_attribute_rejected(self):
        with override_settings(DELIVER_ACTIONS_REQUIRED=True):
            with pytest.raises(AttributeError):
                EventsDelivery.with_(profile=PROFILE).invited


class TestFailureIsolation:

    def test_failing_line_does_not_stop_others(self):
        adapter = MagicMock()
        adapter.enqueue.side_effect = [RuntimeError("broker down"), None]

        with override_settings(DELIVERY_MODE="normal"), use_adapter(adapter):
            with pytest.raises(LineDispatchError) as info:
                EventsDelivery.with_(profile=PROFILE).notify("canceled", "Gala")

        assert adapter.enqueue.call_count == 2
        assert list(info.value.errors) == ["mailer"]
        assert isinstance(info.value.errors["mailer"], RuntimeError)
        assert info.value.details["lines"] == ["mailer"]

    def test_all_lines_failing(self):
        adapter = MagicMock()
        adapter.enqueue.side_effect = RuntimeError("broker down")

        with override_settings(DELIVERY_MODE="normal"), use_adapter(adapter):
            with pytest.raises(LineDispatchError) as info:
                EventsDelivery.with_(profile=PROFILE).notify("canceled", "Gala")

        assert sorted(info.value.errors) == ["mailer", "notifier"]
