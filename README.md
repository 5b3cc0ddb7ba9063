# homie-automation

Building blocks for a home automation controller that follows the Homie 5
convention over MQTT, plus a small `homie-automation` command that ties some
of them together.

The package provides:

- references to Homie devices and properties, written as subjects such as
  `homie/lamp/light/on`
- typed Homie values and their conversion to and from plain script values
- an MQTT client that remembers its subscriptions and reports its activity as
  events on an asyncio queue
- a seven-field cron parser and a manager that queues an event each time a
  schedule fires
- a store of devices with a script-facing API to read values, descriptions and
  alerts and to send set commands
- a collection of script modules, kept by module name as their files appear
  and disappear
- helpers for scripts: sleeping, JSON, HTTP requests and MQTT publishing
- settings read from `HCACTL_*` environment variables, and logging set-up
- an event multiplexer and an event loop that dispatches events to handlers

## Installation

```
pip install .
```

For development, with the test dependencies:

```
pip install ".[test]"
pytest
```

## The command

```
homie-automation
```

It takes no options besides `--help`; everything is configured through
environment variables. The command:

1. reads the settings and sets the default Homie domain;
2. connects an MQTT client to the broker, with client id
   `<HCACTL_HOMIE_CLIENT_ID>-mqtt`;
3. once the broker has accepted the connection, reads every `*.lua` file in
   the folder named by `HCACTL_LUA_MODULE_CONFIG` and keeps its text as a
   script module named after the file (without `.lua`); after a reconnect it
   subscribes again to the topics it had subscribed to;
4. runs until it receives SIGINT, SIGTERM or SIGQUIT, then waits one second,
   disconnects from the broker and exits once no more events arrive for a
   second.

It exits with status 0 after a clean shutdown and 1 after a fatal error, which
it prints to standard error.

## What the package does not do

The command is a minimal controller. It does not:

- discover Homie devices on the broker or fill the device store;
- load, run or watch rules, and has no rule engine, timers or solar events;
- publish virtual devices;
- keep a persistent value store;
- interpret script modules: their text is collected, not executed;
- watch the module folder for later changes, or load modules from an MQTT
  topic or a Kubernetes config map (only `file:` sources are read; others are
  logged as errors).

`HCACTL_RULES_CONFIG`, `HCACTL_VIRTUAL_DEVICES_CONFIG`,
`HCACTL_VALUE_STORE_CONFIG`, `HCACTL_LOCATION`, `HCACTL_HOMIE_CTRL_ID` and
`HCACTL_HOMIE_CTRL_NAME` are parsed and checked, so a malformed value stops the
program at start-up, but the command does nothing further with them.

## Configuration

All settings are read from environment variables with the prefix `HCACTL_`.

### Broker and controller

| Variable                  | Default                                    |
|---------------------------|--------------------------------------------|
| `HCACTL_HOMIE_HOST`       | `localhost`                                |
| `HCACTL_HOMIE_PORT`       | `1883`                                     |
| `HCACTL_HOMIE_USERNAME`   | empty (no authentication)                  |
| `HCACTL_HOMIE_PASSWORD`   | empty                                      |
| `HCACTL_HOMIE_CLIENT_ID`  | `hcactl-` followed by 8 random letters and digits |
| `HCACTL_HOMIE_DOMAIN`     | `homie`                                    |
| `HCACTL_HOMIE_CTRL_ID`    | `hc-homie5-automation-ctrl`                |
| `HCACTL_HOMIE_CTRL_NAME`  | `Homecontrol Automation Controller`        |

The port must be a number from 0 to 65535, the domain must not contain `/`,
`+` or `#`, and the controller id may hold only lower-case letters, digits and
`-`; otherwise `SettingsError` is raised.

### Configuration sources

| Variable                         | Default                  |
|----------------------------------|--------------------------|
| `HCACTL_RULES_CONFIG`            | `file:./rules`           |
| `HCACTL_VIRTUAL_DEVICES_CONFIG`  | `file:./virtual_devices` |
| `HCACTL_LUA_MODULE_CONFIG`       | `file:./lua`             |

Each takes one of these forms:

- `file:/path/to/folder`
- `mqtt:topic`
- `kubernetes:name[,namespace]`; the namespace defaults to `default`

### Value store

`HCACTL_VALUE_STORE_CONFIG` is one of:

- `inmemory` (the default)
- `sqlite:/path/to/filename.db`
- `kubernetes:secret|configmap,name[,namespace]`; any resource type other than
  `secret` means a config map

### Location

`HCACTL_LOCATION` is `<latitude>,<longitude>,<elevation>`, defaulting to
`0,0,0`.

### Logging and directories

| Variable                     | Meaning                                                  |
|------------------------------|----------------------------------------------------------|
| `HCACTL_LOGLEVEL`            | `trace`, `debug`, `info` (default), `warn`, `warning`, `error` or `off`; in `target=level` only the level counts |
| `HCACTL_LOG_TO_FILE`         | `true` to also write `homie-automation.log` in the data directory (default `false`) |
| `HCACTL_ENV_COLOR_LOG`       | `false` to turn off coloured level names (default `true`) |
| `HCACTL_LOG_SOURCE_FILES`    | `true` to include source file and line (default `false`) |
| `HCACTL_DATA`                | data directory                                           |
| `HCACTL_CONFIG`              | configuration directory                                  |

Boolean variables accept exactly `true` or `false`; anything else gives the
default. Without `HCACTL_DATA` or `HCACTL_CONFIG` the platform's per-user data
and configuration directories for `homie-automation` are used.

### Example

```
export HCACTL_HOMIE_HOST=localhost
export HCACTL_HOMIE_USERNAME=automation
export HCACTL_HOMIE_PASSWORD=password
export HCACTL_LUA_MODULE_CONFIG=file:/etc/automation/lua
export HCACTL_LOGLEVEL=debug
homie-automation
```

## Using the library

### Subjects and values

```python
from homie_automation.homie import PropertyRef, DeviceRef
from homie_automation.values import from_script, to_script, ValueKind

prop = PropertyRef.from_subject("lamp/light/on")   # default domain "homie"
prop.to_subject()        # "homie/lamp/light/on"
prop.to_topic()          # "homie/5/lamp/light/on"
prop.device_ref()        # DeviceRef for "homie/lamp"

from_script("rgb,255,0,0").kind      # ValueKind.COLOR
from_script("PT90S").kind            # ValueKind.DURATION
to_script(from_script({"a": 1}))     # '{"a":1}'
```

`set_default_homie_domain` changes the domain that subjects without one use.
Malformed subjects raise `SubjectError`; unconvertible values raise
`ValueConversionError`.

### Settings and connection state

```python
from homie_automation.settings import parse_config_backend, LocationConfig, Settings
from homie_automation.connection import ConnectionTracker, ConnectionState

backend = parse_config_backend("kubernetes:rules")
print(backend.name, backend.namespace)        # rules default

location = LocationConfig.parse("48.166,11.568,520")
settings = Settings.from_env({"HCACTL_HOMIE_PORT": "1884"})

tracker = ConnectionTracker()
tracker.change_state(ConnectionState.CONNECTED)      # ConnectionEvent.CONNECT
tracker.change_state(ConnectionState.DISCONNECTED)   # ConnectionEvent.DISCONNECT
tracker.change_state(ConnectionState.CONNECTED)      # ConnectionEvent.RECONNECT
```

### Cron

Expressions have seven fields: seconds, minutes, hours, day of month, month,
day of week (1 is Sunday, 7 is Saturday; names allowed) and year (1970 to
2100). Six fields are accepted with any year. `*`, `?`, lists, ranges, steps
and the aliases `@yearly`, `@annually`, `@monthly`, `@weekly`, `@daily` and
`@hourly` are understood.

```python
from datetime import datetime, timezone
from homie_automation.cron import CronSchedule

schedule = CronSchedule.parse("0 30 7 * * MON-FRI *")
first = next(schedule.upcoming(datetime(2024, 1, 1, tzinfo=timezone.utc)))
```

`CronManager.schedule_cron(rule_hash, trigger_index, expression)` must be
called inside a running event loop; it puts a `CronEvent` on
`CronManager.events` at each firing. An invalid expression is logged and not
scheduled.

### Modules

- `homie_automation.homie`: domains, device and property references
- `homie_automation.values`: `HomieValue`, `HomieColor`, `parse_datetime`,
  `parse_duration`, `from_script`, `to_script`
- `homie_automation.connection`: `ConnectionTracker`, `all_connected`,
  `start_watchers`
- `homie_automation.cfg_files`: `CfgFilesTracker`, file id to file name
- `homie_automation.lua_modules`: configuration events and `LuaModuleManager`
- `homie_automation.mqtt_client`: `run_mqtt_client`, `ManagedMqttClient`,
  `MqttClientHandle` and the client events
- `homie_automation.cron`: `CronSchedule`, `CronManager`, `CronEvent`
- `homie_automation.script_utils`: `ScriptUtils` and `HttpBody`
- `homie_automation.devices`: `Device`, `DeviceStore`, `DeviceManager`,
  `HomieScriptApi`
- `homie_automation.settings`: environment settings and their parsers
- `homie_automation.app_env`: directories, log level and `initialize_logging`
- `homie_automation.eventloop`: `AppState`, `EventMultiplexer`, the handlers
  and `run_event_loop`
- `homie_automation.cli`: `run_application` and `main`