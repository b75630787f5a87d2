"""Tests for OTP login."""

import json
import re
import threading
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from storefront.errors import InvalidOtpError, OtpRateLimitedError, SmsError, ValidationError
from storefront.otp import OTP_TABLE, MessageBotSms, OtpService
from storefront.utils import normalize_phone


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def otp(storefront, sms, clock):
    return OtpService(storefront.data_store, sms, clock=clock)


def last_code(sms):
    return re.search(r"\d{6}", sms.sent[-1][1]).group(0)


class TestNormalizePhone:
    @pytest.mark.parametrize(
        "raw", ["9876543210", "98765 43210", "919876543210", "+919876543210", "+91 98765-43210"]
    )
    def test_accepted_forms(self, raw):
        assert normalize_phone(raw) == "+919876543210"

    @pytest.mark.parametrize("raw", ["", "12345", "5876543210", "+14155550123", "98765432101"])
    def test_rejected(self, raw):
        with pytest.raises(ValidationError):
            normalize_phone(raw)


class TestSend:
    def test_sends_six_digit_code(self, otp, sms):
        assert otp.send("9876543210") == "+919876543210"
        phone, message = sms.sent[0]
        assert phone == "+919876543210"
        assert re.search(r"\b\d{6}\b", message)

    def test_cooldown(self, otp, clock, sms):
        otp.send("9876543210")
        clock.advance(seconds=20)
        with pytest.raises(OtpRateLimitedError) as exc_info:
            otp.send("+919876543210")
        assert exc_info.value.wait_seconds == 40
        assert len(sms.sent) == 1

        clock.advance(seconds=40)
        otp.send("9876543210")
        assert len(sms.sent) == 2

    def test_cooldown_is_per_phone(self, otp, sms):
        otp.send("9876543210")
        otp.send("9123456789")
        assert len(sms.sent) == 2

    def test_concurrent_sends_respect_cooldown(self, otp, sms):
        attempts = 6
        limited = []
        barrier = threading.Barrier(attempts)

        def request_code():
            barrier.wait()
            try:
                otp.send("9876543210")
            except OtpRateLimitedError:
                limited.append(1)

        threads = [threading.Thread(target=request_code) for _ in range(attempts)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(sms.sent) == 1
        assert len(limited) == attempts - 1

    def test_old_codes_purged_on_send(self, otp, storefront, clock):
        otp.send("9876543210")
        otp.send("9123456789")
        clock.advance(minutes=6)
        otp.send("9876543210")

        rows = storefront.data_store.select(OTP_TABLE)
        assert [r["phone"] for r in rows] == ["+919876543210"]
        assert rows[0]["created_at"].startswith("2024-06-01T12:06")

    def test_superseded_code_replaced(self, otp, storefront, clock):
        otp.send("9876543210")
        clock.advance(seconds=90)
        otp.send("9876543210")
        assert len(storefront.data_store.select(OTP_TABLE, {"phone": "+919876543210"})) == 1

    def test_sms_failure_stores_nothing(self, storefront, clock):
        class BrokenSms:
            def send(self, phone, message):
                raise SmsError("provider down")

        service = OtpService(storefront.data_store, BrokenSms(), clock=clock)
        with pytest.raises(SmsError):
            service.send("9876543210")
        # No cooldown was started
        with pytest.raises(SmsError):
            service.send("9876543210")


class TestVerify:
    def test_valid_code_logs_in_and_creates_user(self, otp, sms):
        otp.send("9876543210")
        user = otp.verify("9876543210", last_code(sms))
        assert user["phone"] == "+919876543210"
        assert user["id"]

    def test_same_user_on_next_login(self, otp, sms, clock):
        otp.send("9876543210")
        first = otp.verify("9876543210", last_code(sms))
        clock.advance(seconds=61)
        otp.send("9876543210")
        second = otp.verify("9876543210", last_code(sms))
        assert first["id"] == second["id"]

    def test_single_use(self, otp, sms):
        otp.send("9876543210")
        code = last_code(sms)
        otp.verify("9876543210", code)
        with pytest.raises(InvalidOtpError):
            otp.verify("9876543210", code)

    def test_wrong_code(self, otp, sms):
        otp.send("9876543210")
        wrong = "000000" if last_code(sms) != "000000" else "111111"
        with pytest.raises(InvalidOtpError):
            otp.verify("9876543210", wrong)

    def test_expired(self, otp, sms, clock):
        otp.send("9876543210")
        clock.advance(minutes=5)
        with pytest.raises(InvalidOtpError):
            otp.verify("9876543210", last_code(sms))

    def test_no_code_sent(self, otp):
        with pytest.raises(InvalidOtpError):
            otp.verify("9876543210", "123456")


class TestMessageBotSms:
    def test_posts_message(self):
        received = {}

        def handler(request):
            received.update(json.loads(request.content))
            return httpx.Response(200, json={"status": "success"})

        client = MessageBotSms("key", "F4TRAD", "https://sms.test/send", transport=httpx.MockTransport(handler))
        client.send("+919876543210", "hello")
        assert received["to"] == "+919876543210"
        assert received["sender"] == "F4TRAD"

    def test_provider_error(self):
        def handler(request):
            return httpx.Response(200, json={"status": "error", "message": "bad sender"})

        client = MessageBotSms("key", "F4TRAD", "https://sms.test/send", transport=httpx.MockTransport(handler))
        with pytest.raises(SmsError, match="bad sender"):
            client.send("+919876543210", "hello")

    def test_missing_credentials(self):
        with pytest.raises(SmsError):
            MessageBotSms(None, None, "https://sms.test/send").send("+919876543210", "hello")
