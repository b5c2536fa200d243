"""Tests for the SNS alert channel."""

import logging

import boto3
import pytest
from botocore.stub import Stubber

from quake_tracker.notifier import LogNotifier, SnsNotifier, build_notifier
from quake_tracker.settings import Settings

MESSAGE = "Alert! Alert! Alert. New Earthquake detected."


@pytest.fixture
def sns():
    client = boto3.client(
        "sns",
        region_name="ap-south-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield client, stubber


class TestSnsNotifier:
    @pytest.mark.asyncio
    async def test_sms_to_phone_number(self, sns):
        client, stubber = sns
        stubber.add_response("publish", {"MessageId": "m-1"}, {"Message": MESSAGE, "PhoneNumber": "+15550100"})

        ok = await SnsNotifier(client, "+15550100").notify(MESSAGE)

        assert ok
        stubber.assert_no_pending_responses()

    @pytest.mark.asyncio
    async def test_topic_arn_recipient(self, sns):
        client, stubber = sns
        arn = "arn:aws:sns:ap-south-1:123456789012:quake-alerts"
        stubber.add_response("publish", {"MessageId": "m-2"}, {"Message": MESSAGE, "TopicArn": arn})

        assert await SnsNotifier(client, arn).notify(MESSAGE)

    @pytest.mark.asyncio
    async def test_explicit_recipient_overrides_default(self, sns):
        client, stubber = sns
        stubber.add_response("publish", {"MessageId": "m-3"}, {"Message": MESSAGE, "PhoneNumber": "+15550199"})

        assert await SnsNotifier(client, "+15550100").notify(MESSAGE, "+15550199")

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, sns, caplog):
        client, stubber = sns
        stubber.add_client_error("publish", service_error_code="InvalidParameter", http_status_code=400)

        with caplog.at_level(logging.ERROR):
            ok = await SnsNotifier(client, "+15550100").notify(MESSAGE)

        assert ok is False
        assert "InvalidParameter" in caplog.text


class TestLogNotifier:
    @pytest.mark.asyncio
    async def test_only_logs(self, caplog):
        with caplog.at_level(logging.WARNING):
            ok = await LogNotifier().notify(MESSAGE)

        assert ok is False
        assert "no recipient configured" in caplog.text


def test_build_notifier_without_recipient():
    assert isinstance(build_notifier(Settings()), LogNotifier)


def test_build_notifier_with_recipient():
    notifier = build_notifier(Settings(alert_phone_number="+15550100"))
    assert isinstance(notifier, SnsNotifier)
    assert notifier.recipient == "+15550100"


def test_sns_client_carries_timeouts():
    notifier = build_notifier(Settings(alert_phone_number="+15550100", fetch_timeout_secs=3.0))
    cfg = notifier.client.meta.config
    assert cfg.connect_timeout == 3.0
    assert cfg.read_timeout == 3.0
    assert cfg.retries["max_attempts"] == 1
