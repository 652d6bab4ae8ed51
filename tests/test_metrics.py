"""Tests for the CloudWatch metrics client."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

from receptionist.models import ProviderConfig
from receptionist.providers.base import GenerationRequest
from receptionist.providers.openai_provider import DeepSeekProvider
from receptionist.services.metrics import MetricsClient


class TestMetricsRecording:
    """Verify that record_success / record_failure buffer the right data."""

    def _make_client(self, *, enabled: bool = False) -> MetricsClient:
        with patch.dict("os.environ", {"METRICS_ENABLED": str(enabled).lower()}):
            return MetricsClient()

    def test_record_success_without_tokens_appends_two_data_points(self):
        client = self._make_client()
        client.record_success("deepseek", "generate", latency_ms=123.4)
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"Provider/RequestCount", "Provider/Latency"}

    def test_record_success_with_tokens_adds_usage_and_cost(self):
        client = self._make_client()
        client.record_success("openai", "generate", latency_ms=800.0, tokens=250, cost=0.00125)
        assert len(client._buffer) == 4
        cost = next(m for m in client._buffer if m["MetricName"] == "Provider/EstimatedCostUSD")
        assert cost["Value"] == 0.00125

    def test_record_failure_appends_count_and_error(self):
        client = self._make_client()
        client.record_failure("anthropic", "generate", error_type="timeout_or_network")
        # No latency point since default is 0
        assert len(client._buffer) == 2
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"Provider/RequestCount", "Provider/ErrorCount"}

    def test_record_failure_with_latency_appends_three_data_points(self):
        client = self._make_client()
        client.record_failure("deepseek", "generate", error_type="429", latency_ms=500.0)
        assert len(client._buffer) == 3

    def test_success_dimensions_include_provider_and_status(self):
        client = self._make_client()
        client.record_success("deepseek", "generate", latency_ms=50.0)
        count_metric = next(
            m for m in client._buffer
            if m["MetricName"] == "Provider/RequestCount"
        )
        dim_map = {d["Name"]: d["Value"] for d in count_metric["Dimensions"]}
        assert dim_map["Provider"] == "deepseek"
        assert dim_map["Status"] == "success"

    def test_failure_dimensions_include_error_type(self):
        client = self._make_client()
        client.record_failure("openai", "generate", error_type="401")
        error_metric = next(
            m for m in client._buffer
            if m["MetricName"] == "Provider/ErrorCount"
        )
        dim_map = {d["Name"]: d["Value"] for d in error_metric["Dimensions"]}
        assert dim_map["ErrorType"] == "401"


class TestMetricsFlush:
    """Verify flush behaviour with and without CloudWatch enabled."""

    def test_flush_when_disabled_does_not_call_boto3(self):
        with patch.dict("os.environ", {"METRICS_ENABLED": "false"}):
            client = MetricsClient()
        client.record_success("deepseek", "generate", latency_ms=100.0)
        assert client.flush() == 0

    def test_flush_clears_buffer(self):
        with patch.dict("os.environ", {"METRICS_ENABLED": "false"}):
            client = MetricsClient()
        client.record_success("deepseek", "generate", latency_ms=100.0)
        client.flush()
        assert len(client._buffer) == 0

    def test_flush_when_enabled_calls_put_metric_data(self):
        with patch.dict("os.environ", {"METRICS_ENABLED": "true"}), \
             patch.object(MetricsClient, "_start_flush_thread"):
            client = MetricsClient()

        mock_cw = MagicMock()
        client._cw_client = mock_cw

        client.record_success("deepseek", "generate", latency_ms=100.0)
        sent = client.flush()

        assert sent == 2
        mock_cw.put_metric_data.assert_called_once()
        call_args = mock_cw.put_metric_data.call_args
        assert call_args[1]["Namespace"] == "GymReceptionist"
        assert len(call_args[1]["MetricData"]) == 2

    def test_flush_empty_buffer_returns_zero(self):
        with patch.dict("os.environ", {"METRICS_ENABLED": "false"}):
            client = MetricsClient()
        assert client.flush() == 0


class TestProviderIntegration:
    async def test_provider_call_is_recorded(self):
        provider = DeepSeekProvider(ProviderConfig(
            provider="deepseek", model="deepseek-chat", api_key="sk-test",
        ))
        response = MagicMock(status_code=200)
        response.json.return_value = {
            "choices": [{"message": {"content": "hi"}}],
            "usage": {"total_tokens": 12},
        }

        with patch.object(provider._client, "post", new=AsyncMock(return_value=response)), \
             patch("receptionist.providers.base.metrics") as mock_metrics:
            await provider.generate_response(
                GenerationRequest(messages=[{"role": "user", "content": "hola"}]),
            )

        mock_metrics.record_success.assert_called_once()
        assert mock_metrics.record_success.call_args[0][0] == "deepseek"
        assert mock_metrics.record_success.call_args[1]["tokens"] == 12
