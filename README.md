# autoscaler

Building blocks for a service that keeps a pool of build-agent servers
sized to demand: the server and instance model, a small Prometheus-style
metrics registry, Slack notifications on server state changes, and HTTP
request handlers for a management API built on werkzeug.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Model

`autoscaler.model` defines:

- `ServerState` (`pending`, `creating`, `created`, `staging`, `running`,
  `shutdown`, `stopping`, `stopped`, `error`) and `ProviderType`
  (`amazon`, `azure`, `digitalocean`, `google`, `hetznercloud`, `linode`,
  `openstack`, `packet`, `scaleway`, `vultr`), both string enumerations;
- the dataclasses `Server`, `Instance` and `InstanceCreateOpts`;
- the exceptions `InstanceError` (an error with captured server logs),
  `InstanceNotFoundError` and `ServerNotFoundError`;
- the abstract interfaces `Provider` (`create`, `destroy`) and
  `ServerStore` (`find`, `list`, `list_state`, `create`, `update`,
  `delete`, `purge`).

`Server.to_dict()` returns a JSON-ready mapping, with the key and
certificate byte fields base64 encoded; `Server.from_dict()` reads such a
mapping back.

```python
from autoscaler.model import Server, ServerState

server = Server(name="agent-1", state=ServerState.RUNNING, capacity=2)
assert Server.from_dict(server.to_dict()) == server
```

## Metrics

`autoscaler.metrics` holds a thread-safe `Registry` of `Counter`,
`Histogram` and `GaugeFunc` metrics. `Registry.gather()` returns a
snapshot of every metric sorted by name, and `Registry.expose()` renders
them in the Prometheus text format. Registering a second metric under the
same name raises `ValueError`. `default_registry()` returns the
process-wide registry.

`PrometheusCollector` registers histograms for server create, boot and
install times (buckets at 60, 150, 300, 600, 900 and 1200 seconds) and
counters for the matching errors. Its `track_*` methods take a start time
in epoch seconds and record the elapsed time rounded to whole seconds.
`NopCollector` records nothing.

`autoscaler.instrument` wraps stores and providers:

- `server_count(store, registry)` and `server_capacity(store, registry)`
  register the gauges `drone_server_count` and `drone_server_capacity`,
  computed from the running servers each time they are collected;
- `server_create(provider, registry)` and `server_delete(provider, registry)`
  return providers that count successful and failed `create` or
  `destroy` calls (`drone_servers_created`, `drone_servers_created_err`,
  `drone_servers_deleted`, `drone_servers_deleted_err`).

When `registry` is omitted the default registry is used.

```python
from autoscaler.metrics import Registry
from autoscaler.instrument import server_count

registry = Registry()
server_count(my_store, registry)
print(registry.expose())
```

## Slack

`autoscaler.slack.SlackNotifier` wraps a `ServerStore` and passes every
call through to it. Its `update` stores the server and then posts a
webhook message when the server is running (if `create` is set), stopped
(if `destroy` is set) or in error (if `error` is set). A failed post is
logged, not raised. `humanize_time(unix, now)` gives the uptime text used
in the stop message, such as `"1 hour"`.

## HTTP handlers

`autoscaler.handlers` provides handlers: callables that take a werkzeug
`Request`, plus URL parameters as keyword arguments, and return a werkzeug
`Response`.

- `handle_server_list(servers)`, `handle_server_find(servers)` (takes
  `name`), `handle_server_create(servers, name_prefix, concurrency)` and
  `handle_server_delete(servers)` (takes `name`, honours a `force` query
  value) work on a `ServerStore`. Deleting a server sets it to `shutdown`;
  a server in the `error` state with no instance id, or with `force`, is
  removed from the store directly.
- `handle_engine_pause(engine)`, `handle_engine_resume(engine)` and
  `handle_varz(engine)` call `pause()`, `resume()` and `paused()` on any
  engine object that has them.
- `handle_version(source, version, commit)`, `handle_healthz()` and
  `handle_metrics(token, registry)`; the metrics handler requires the
  header `Authorization: Bearer <token>` when a token is given.
- `check_drone(server_url)` is middleware that looks up the bearer token's
  user at `<server_url>/api/user` and admits only administrators, answering
  401 or 403 otherwise.

```python
from werkzeug.wrappers import Request
from autoscaler.handlers import handle_metrics

handler = handle_metrics("token")
request = Request.from_values(headers={"Authorization": "Bearer token"})
response = handler(request)
assert response.status_code == 200
```

JSON responses are built by `autoscaler.writer` (`write_json`,
`write_error`, `write_not_found`, `write_unauthorized`, `write_forbidden`,
`write_bad_request`, `write_error_code`); set `HTTP_JSON_INDENT=true` to
indent them.

## Other helpers

- `autoscaler.locking`: `new_locker(driver)` returns a real lock for
  `sqlite3` and a `NoopLocker` otherwise; `is_conn_reset(err)` tells
  whether an error reports a connection reset by the peer.
- `autoscaler.web`: `nocache(headers)` sets headers that disable response
  caching, and `timestamp(value)` formats a unix time as
  `YYYY-MM-DDTHH:MM:SSZ`.

## What this package does not do

It has no scaling engine, no cloud provider implementations, and no
database-backed `ServerStore`: these are interfaces for you to implement.
It also has no URL router, no HTTP server, no HTML dashboard templates and
no command-line program; mount the handlers in a werkzeug application of
your own.