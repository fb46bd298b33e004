# httpscaler

Building blocks for an external scaler that drives autoscaling from HTTP
traffic. It gathers the pending request counts that interceptors report, adds
them up per host, and answers the questions an autoscaler asks: is this
workload active, what is its target size, and what is its current metric value.

## Installation

```
pip install httpscaler
```

There are no runtime dependencies. To run the tests, install the `test` extra.

## Configuration

`httpscaler.config.parse_config(environ=None)` reads the scaler's settings from
a mapping (by default `os.environ`) and returns a frozen `ScalerConfig`:

| Variable | Field | Default |
| --- | --- | --- |
| `KEDA_HTTP_SCALER_PORT` | `grpc_port` | `8080` |
| `KEDA_HTTP_SCALER_TARGET_ADMIN_NAMESPACE` | `target_namespace` | required |
| `KEDA_HTTP_SCALER_TARGET_ADMIN_SERVICE` | `target_service` | required |
| `KEDA_HTTP_SCALER_TARGET_ADMIN_DEPLOYMENT` | `target_deployment` | required |
| `KEDA_HTTP_SCALER_TARGET_ADMIN_PORT` | `target_port` | required |
| `KEDA_HTTP_SCALER_TARGET_PENDING_REQUESTS` | `target_pending_requests` | `100` |
| `KEDA_HTTP_SCALER_CONFIG_MAP_INFORMER_RSYNC_PERIOD` | `config_map_cache_rsync_period` | `60m` |
| `KEDA_HTTP_SCALER_DEPLOYMENT_INFORMER_RSYNC_PERIOD` | `deployment_cache_rsync_period` | `60m` |
| `KEDA_HTTP_QUEUE_TICK_DURATION` | `queue_tick_duration` | `500ms` |

A missing required variable or a malformed value raises `ConfigError` (a
`ValueError`). Durations become `datetime.timedelta` values; they use the
`1h30m`, `500ms`, `2s` notation (units `ns`, `us`, `ms`, `s`, `m`, `h`, with an
optional sign and fractions), and `parse_duration(text)` parses that notation
on its own.

## Metric names

`httpscaler.naming.metric_name(namespace, name)` returns the metric name for a
scaled object: `http-<namespace>/<name>` passed through `escape_string`, which
replaces every character other than ASCII letters, digits, `-` and `.` with
`_` followed by the upper-case hex of its UTF-8 bytes, padded to at least four
digits. For example, `/` becomes `_002F`.

## Collecting counts

`httpscaler.queue_pinger` holds the aggregation logic:

- `Count(concurrency=0, rps=0.0)` is a frozen value that supports `+`.
- `fetch_counts(endpoints_fn, counts_fn, namespace, service_name, admin_port)`
  calls `endpoints_fn(namespace, service_name)` for endpoint addresses, builds
  `http://<address>:<admin_port>` for each, calls `counts_fn(url)` for all of
  them concurrently, and sums the returned host-to-`Count` mappings per host.
  It raises `NoEndpointsError` when there are no endpoints, and re-raises the
  error of any failing `counts_fn` call.
- `QueuePinger(endpoints_fn, counts_fn, namespace, service_name,
  deployment_name, admin_port, log=None)` keeps the latest totals.
  `fetch_and_save_counts()` refreshes them once, setting `status` to
  `PingerStatus.ACTIVE` and `last_ping_time` on success, or to
  `PingerStatus.ERROR` and re-raising on failure. `counts()` returns a copy of
  the current totals.
- `QueuePinger.run(stop_event, tick_interval, endpoint_events=None)` refreshes
  every `tick_interval` seconds, and also whenever an item arrives on the
  optional `endpoint_events` queue. Refresh errors are logged, not raised. It
  returns once `stop_event` is set, leaving `status` at `PingerStatus.ERROR`.

## Answering the autoscaler

`httpscaler.handlers.ExternalScaler(pinger, lookup, default_target_metric,
stream_interval=None, log=None)` answers requests about a `ScaledObjectRef`
(`namespace`, `name`, `scaler_metadata`). `lookup(namespace, name)` must return
an `HTTPScaledObject` or raise `HTTPScaledObjectNotFound`.

- `ping()` does nothing.
- `get_metrics(ref)` returns a one-element list of `MetricValue`. The metadata
  key `httpScaledObject` names the object to look up; the value is the ceiling
  of the host's `rps` when its `scaling_metric` has a `rate`, otherwise its
  `concurrency`, taken from the pinger under the key `<namespace>/<name>`
  (zero when absent). Without that key but with
  `interceptorTargetPendingRequests`, the value is the sum of concurrency over
  all hosts. Otherwise it raises `ScalerError`.
- `is_active(ref)` is true when that metric value is positive.
- `stream_is_active(ref, send, stop_event)` calls `send(is_active(ref))` every
  stream interval until `stop_event` is set; errors are raised.
- `get_metric_spec(ref)` returns a one-element list of `MetricSpec` whose
  target is the object's `scaling_metric` rate or concurrency if set, else its
  `target_pending_requests`, else 100. If the object is not found and the
  metadata holds `interceptorTargetPendingRequests`, that value (a 64-bit
  integer) is the target; an unparsable value raises `ScalerError`.

`stream_interval_from_env(environ=None)` reads
`KEDA_HTTP_SCALER_STREAM_INTERVAL_MS` and returns seconds, falling back to
0.2 when the variable is missing or invalid. It supplies the interval when
`stream_interval` is not given.

## What this package does not do

It has no command to start a scaler, no gRPC server or health service, no
Kubernetes client or watch of endpoints and HTTPScaledObjects, and no HTTP
client for interceptor queue endpoints. Callers provide these through
`endpoints_fn`, `counts_fn`, `lookup`, `send` and the event queue, and run the
pinger loop in their own thread.