"""
Unit tests for mapping adapter exceptions into the rotation error taxonomy.
"""

import httpx
import pytest
from botocore.exceptions import ClientError as BotoClientError
from botocore.exceptions import EndpointConnectionError

from node_rotation.errors import (
    ClientError,
    ConvergenceTimeout,
    NotConverged,
    PreconditionFailed,
    TransientOperationalError,
    UnhealthyCluster,
    map_client_error,
)


def _boto(code: str) -> BotoClientError:
    return BotoClientError({"Error": {"Code": code, "Message": "x"}}, "SetDesiredCapacity")


def _http(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "http://es:9200/_cluster/health")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError("bad", request=request, response=response)


def test_rotation_errors_pass_through():
    err = NotConverged("5 != 6")
    assert map_client_error(err) is err


def test_unhealthy_cluster_is_a_precondition():
    assert issubclass(UnhealthyCluster, PreconditionFailed)


@pytest.mark.parametrize(
    "exc",
    [
        httpx.ConnectError("refused"),
        httpx.ReadTimeout("slow"),
    ],
)
def test_http_transport_errors_are_transient(exc):
    assert isinstance(map_client_error(exc), TransientOperationalError)


def test_http_5xx_is_transient_4xx_is_not():
    assert isinstance(map_client_error(_http(503)), TransientOperationalError)
    mapped = map_client_error(_http(400))
    assert isinstance(mapped, ClientError)
    assert "400" in str(mapped)


@pytest.mark.parametrize("code", ["Throttling", "ScalingActivityInProgress"])
def test_boto_busy_codes_are_transient(code):
    assert isinstance(map_client_error(_boto(code)), TransientOperationalError)


def test_boto_validation_error_is_client_error():
    mapped = map_client_error(_boto("ValidationError"))
    assert isinstance(mapped, ClientError)
    assert "ValidationError" in str(mapped)


def test_boto_connection_error_is_transient():
    exc = EndpointConnectionError(endpoint_url="https://autoscaling.eu-west-1.amazonaws.com")
    assert isinstance(map_client_error(exc), TransientOperationalError)


def test_unknown_exception_becomes_client_error():
    assert isinstance(map_client_error(RuntimeError("?")), ClientError)


def test_convergence_timeout_message():
    err = ConvergenceTimeout("ClusterSizeCheck", 20, NotConverged("5 != 6"))
    assert str(err) == "ClusterSizeCheck did not complete after 20 attempts: 5 != 6"
    assert err.attempts == 20
