import json

import pytest
import requests

from haulage.core.errors import UpstreamUnavailable
from haulage.services import relay as relay_module
from haulage.services.maps_client import MapsClient, MapsConfig
from haulage.services.razorpay_client import (
    RazorpayClient,
    RazorpayConfig,
    RazorpayError,
    expected_signature,
    signature_matches,
)
from haulage.tasks import worker_jobs


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else (json.dumps(body) if body is not None else "")

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeHttp:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def _answer(self, **kwargs):
        self.calls.append(kwargs)
        if self.exc:
            raise self.exc
        return self.response

    def get(self, url, params=None, timeout=None):
        return self._answer(url=url, params=params, timeout=timeout)

    def request(self, method, url, json=None, auth=None, timeout=None):
        return self._answer(method=method, url=url, json=json, auth=auth, timeout=timeout)


MATRIX_OK = {
    "status": "OK",
    "rows": [{"elements": [{"status": "OK", "distance": {"value": 31059}, "duration": {"value": 3180}}]}],
}


def _maps(http):
    return MapsClient(MapsConfig(api_key="k", base_url="https://maps.test/api", timeout=2.0), session=http)


def test_distance_matrix_parsed_to_km_and_minutes():
    http = FakeHttp(FakeResponse(body=MATRIX_OK))
    metrics = _maps(http).distance_and_duration(19.076, 72.8777, 19.2183, 72.9781)

    assert metrics.distance_km == 31.059
    assert metrics.duration_min == 53
    call = http.calls[0]
    assert call["url"] == "https://maps.test/api/distancematrix/json"
    assert call["params"]["origins"] == "19.076,72.8777"
    assert call["params"]["key"] == "k"
    assert call["timeout"] == 2.0


@pytest.mark.parametrize("http", [
    FakeHttp(exc=requests.Timeout("slow")),
    FakeHttp(exc=requests.ConnectionError("down")),
    FakeHttp(FakeResponse(status_code=500, body={})),
    FakeHttp(FakeResponse(body={"status": "REQUEST_DENIED", "error_message": "bad key"})),
    FakeHttp(FakeResponse(body={"status": "OK", "rows": [{"elements": [{"status": "ZERO_RESULTS"}]}]})),
    FakeHttp(FakeResponse(text="<html>")),
])
def test_routing_failures_surface_as_upstream_unavailable(http):
    with pytest.raises(UpstreamUnavailable):
        _maps(http).distance_and_duration(1, 2, 3, 4)


def test_city_lookup_reads_locality():
    body = {
        "status": "OK",
        "results": [{"address_components": [
            {"long_name": "Andheri", "types": ["sublocality"]},
            {"long_name": "Mumbai", "types": ["locality", "political"]},
        ]}],
    }
    assert _maps(FakeHttp(FakeResponse(body=body))).city_for_point(19.1, 72.8) == "Mumbai"
    assert _maps(FakeHttp(FakeResponse(body={"status": "ZERO_RESULTS", "results": []}))).city_for_point(0, 0) is None


def _gateway(http, sandbox=False):
    cfg = RazorpayConfig(host="api.razorpay.test", key_id="rzp_id", key_secret="rzp_secret", timeout=3.0, sandbox=sandbox)
    return RazorpayClient(cfg, session=http)


def test_signature_is_hmac_of_order_and_payment():
    sig = expected_signature("rzp_secret", "order_1", "pay_1")
    assert len(sig) == 64
    assert signature_matches("rzp_secret", "order_1", "pay_1", sig)
    assert not signature_matches("rzp_secret", "order_1", "pay_2", sig)
    assert not signature_matches("other", "order_1", "pay_1", sig)
    assert not signature_matches("rzp_secret", "order_1", "pay_1", "")


def test_create_order_posts_minor_units():
    http = FakeHttp(FakeResponse(body={"id": "order_abc", "amount": 38059, "currency": "INR"}))
    order = _gateway(http).create_order(amount_minor=38059, currency="INR", receipt="HLG-ABC123")

    assert order["id"] == "order_abc"
    call = http.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "https://api.razorpay.test/v1/orders"
    assert call["json"] == {"amount": 38059, "currency": "INR", "receipt": "HLG-ABC123"}
    assert call["auth"] == ("rzp_id", "rzp_secret")


def test_zero_amount_order_is_refused_locally():
    http = FakeHttp(FakeResponse(body={}))
    with pytest.raises(ValueError):
        _gateway(http).create_order(amount_minor=0, currency="INR", receipt="r")
    assert http.calls == []


def test_gateway_error_is_wrapped():
    body = {"error": {"code": "BAD_REQUEST_ERROR", "description": "The amount must be at least INR 1.00"}}
    with pytest.raises(RazorpayError, match="at least INR 1.00"):
        _gateway(FakeHttp(FakeResponse(status_code=400, body=body))).refund(payment_id="pay_1", amount_minor=100)
    with pytest.raises(UpstreamUnavailable):
        _gateway(FakeHttp(exc=requests.Timeout())).refund(payment_id="pay_1", amount_minor=100)


def test_sandbox_skips_the_network():
    http = FakeHttp(exc=AssertionError("network used"))
    gw = _gateway(http, sandbox=True)
    assert gw.create_order(amount_minor=100, currency="INR", receipt="r")["id"].startswith("order_sandbox_")
    assert gw.refund(payment_id="pay_1", amount_minor=100)["id"].startswith("rfnd_sandbox_")
    assert http.calls == []


class FakeRedis:
    def __init__(self):
        self.published = []

    def publish(self, channel, message):
        self.published.append((channel, message))
        return 2


def test_publish_event_serialises_envelope():
    client = FakeRedis()
    out = worker_jobs.publish_event("booking:b1", "driverLocation", {"lat": 19.1, "lng": 72.9}, client=client)

    assert out == {"channel": "booking:b1", "event": "driverLocation", "receivers": 2}
    channel, message = client.published[0]
    assert channel == "booking:b1"
    assert json.loads(message) == {"event": "driverLocation", "payload": {"lat": 19.1, "lng": 72.9}}


def test_expire_job_uses_given_session(db):
    assert worker_jobs.expire_dispatch_requests(db) == {"expired": 0}


class RecordingTask:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def apply_async(self, args, expires=None):
        if self.fail:
            raise ConnectionError("broker unreachable")
        self.sent.append((args, expires))


def test_celery_relay_enqueues_on_named_channels(monkeypatch):
    from haulage.tasks import jobs

    task = RecordingTask()
    monkeypatch.setattr(jobs, "publish_event", task)
    monkeypatch.setattr(relay_module.settings, "RELAY_ENABLED", True)

    r = relay_module.CeleryRelay()
    r.notify("c1", "booking:request", {"bookingId": "b1"})
    r.broadcast_to_booking("b1", "trip:started", {})

    assert task.sent == [
        (("carrier:c1", "booking:request", {"bookingId": "b1"}), relay_module.EVENT_TTL_SECONDS),
        (("booking:b1", "trip:started", {}), relay_module.EVENT_TTL_SECONDS),
    ]


def test_celery_relay_drops_events_when_broker_is_down(monkeypatch):
    from haulage.tasks import jobs

    monkeypatch.setattr(jobs, "publish_event", RecordingTask(fail=True))
    monkeypatch.setattr(relay_module.settings, "RELAY_ENABLED", True)

    relay_module.CeleryRelay().notify("c1", "booking:request", {})


def test_celery_relay_disabled_sends_nothing(monkeypatch):
    from haulage.tasks import jobs

    task = RecordingTask()
    monkeypatch.setattr(jobs, "publish_event", task)
    monkeypatch.setattr(relay_module.settings, "RELAY_ENABLED", False)

    relay_module.CeleryRelay().notify("c1", "booking:request", {})
    assert task.sent == []
