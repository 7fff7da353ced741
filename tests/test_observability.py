import json
import logging

from alphacare_portal.observability import (
    incr_metric,
    log_event,
    metric_key,
    metrics_snapshot,
    reset_metrics,
)


def test_log_event_redacts_credentials(caplog):
    with caplog.at_level(logging.INFO, logger="alphacare_portal"):
        log_event(
            "login_attempt",
            request_id="req-1",
            namespace="doctor",
            access_token="tok-secret",
            password="hunter2",
            refresh_token=None,
        )

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload == {
        "event": "login_attempt",
        "request_id": "req-1",
        "namespace": "doctor",
        "access_token": "[redacted]",
        "password": "[redacted]",
        "refresh_token": None,
    }


def test_metrics_are_keyed_by_sorted_labels():
    reset_metrics()
    incr_metric("auth.login", namespace="patient", outcome="success")
    incr_metric("auth.login", outcome="success", namespace="patient")

    key = metric_key("auth.login", namespace="patient", outcome="success")
    assert key == "auth.login|namespace=patient,outcome=success"
    assert metrics_snapshot() == {key: 2}
