"""Delivery record builder validation and normalization."""

import pytest

from notifyhub.common.errors import DeliveryValidationError
from notifyhub.services.dispatch.builder import build_delivery_records
from notifyhub.services.dispatch.schemas import Channel


def test_records_share_one_notification_id_in_key_order():
    planned = build_delivery_records(
        "u1",
        {
            "in_app": {"message": "hi"},
            "email": {"message": "hi", "subject": "s", "receiver_email": "a@b.com"},
        },
    )

    assert [channel for channel, _ in planned] == ["in_app", "email"]
    ids = {record.notification_id for _, record in planned}
    assert len(ids) == 1
    in_app, email = planned[0][1], planned[1][1]
    assert in_app.channel is Channel.IN_APP
    assert in_app.body == {"message": "hi"}
    assert email.body == {"message": "hi", "subject": "s", "receiver_email": "a@b.com"}
    assert email.user_id == "u1"


def test_each_request_gets_a_fresh_id():
    first = build_delivery_records("u1", {"in_app": {"message": "a"}})
    second = build_delivery_records("u1", {"in_app": {"message": "a"}})
    assert first[0][1].notification_id != second[0][1].notification_id


def test_unknown_channel_is_dropped_not_rejected():
    planned = build_delivery_records("u1", {"pager": {"message": "x"}, "in_app": {"message": "y"}})

    assert planned[0] == ("pager", None)
    assert planned[1][1] is not None


def test_email_extras_are_not_format_checked():
    planned = build_delivery_records("u1", {"email": {"message": "m", "receiver_email": "not-an-address"}})
    assert planned[0][1].body["receiver_email"] == "not-an-address"
    assert planned[0][1].body["subject"] is None


def test_slack_body_passes_target_through():
    planned = build_delivery_records("u1", {"slack": {"message": "m", "slack": "#ops"}})
    assert planned[0][1].body == {"message": "m", "slack": "#ops"}


@pytest.mark.parametrize(
    "user_id, channels",
    [
        ("", {"in_app": {"message": "hi"}}),
        (None, {"in_app": {"message": "hi"}}),
        ("u1", {}),
        ("u1", None),
        ("u1", ["in_app"]),
        ("u1", {"email": {"subject": "no message"}}),
        ("u1", {"in_app": "hi"}),
    ],
)
def test_invalid_requests_raise(user_id, channels):
    with pytest.raises(DeliveryValidationError):
        build_delivery_records(user_id, channels)
