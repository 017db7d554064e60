# slsconfig

A small library with no dependencies for the collection side of a log
service project. It covers:

- Logtail input configs: regex, JSON, delimiter, Apsara, plugin and
  stream inputs. The library can fill in default fields and decode raw
  dictionaries into typed details (`slsconfig.log_config`).
- Plugin inputs such as Docker stdout and MySQL binlog (canal)
  (`slsconfig.plugin`).
- A project client for logstores, machine groups, configs and the links
  between configs and machine groups (`slsconfig.project`).
- ETL metadata records (`slsconfig.etl_meta`).

## Installation

```
pip install slsconfig
```

The tests need pytest. The `test` extra installs it:

```
pip install "slsconfig[test]"
```

## Input configs

The service returns config details as plain dictionaries.
`slsconfig.log_config` has helpers that work on these dictionaries:

- They fill in the fields that are missing, using the service defaults.
- They read a detail's log type.
- They replace fields that already exist.
- They decode a dictionary into a typed detail object.

```python
from slsconfig.log_config import (
    add_necessary_input_config_field,
    convert_to_regex_config_input_detail,
    get_file_config_input_detail_type,
    is_valid_input_type,
    update_input_config_field,
)

detail = {"logType": "common_reg_log", "logPath": "/var/log/app", "filePattern": "*.log"}
add_necessary_input_config_field(detail)
# Now present: localStorage, enableTag, maxSendRate, mergeType,
# fileEncoding, maxDepth, topicFormat, preserve, discardUnmatch,
# timeFormat, logBeginRegex, regex and key.

print(get_file_config_input_detail_type(detail))  # "common_reg_log"
print(is_valid_input_type("file"))                 # True

regex_detail = convert_to_regex_config_input_detail(detail)
print(regex_detail.regex)                          # "(.*)"

update_input_config_field(detail, "filePattern", "*.txt")
```

How the helpers behave at the edges:

- The `convert_to_*` functions return `None` in two cases: the detail
  is not a dictionary of the right kind, or it cannot be decoded.
  - A file detail must carry the matching `logType`.
  - A plugin detail must have `plugin` and must not have `logType`.
  - A stream detail must have `tag`.
- `get_file_config_input_detail_type` returns `None` when the detail has
  no `logType`.
- `update_input_config_field` raises `NoConfigFieldError` when the key
  is not already present. It raises `InvalidTypeError` when the detail
  is not a mutable mapping.

There are typed details for each input kind:

- `RegexConfigInputDetail`
- `JSONConfigInputDetail`
- `DelimiterConfigInputDetail`
- `ApsaraLogConfigInputDetail`
- `PluginLogConfigInputDetail`
- `StreamLogConfigInputDetail`

Each of these details builds on `CommonConfigInputDetail`. The file
details also build on `LocalFileConfigInputDetail`. Call
`SomeDetail.initialized()` to get a detail with the service defaults
set. For a regex detail these include `logType`, `regex` and
`logBeginRegex`.

Every model converts to and from a dictionary with `to_dict()` and
`from_dict()`, using the service's JSON field names. A complete config
is a `LogConfig` that holds an `OutputDetail`. The legacy flat
`InputDetail` and the `SensitiveKey` entries convert in the same way.

## Plugin inputs

```python
from slsconfig.plugin import (
    PLUGIN_INPUT_TYPE_DOCKER_STDOUT,
    LogConfigPluginInput,
    create_config_plugin_docker_stdout,
    create_plugin_input_item,
)

stdout = create_config_plugin_docker_stdout()
stdout.include_env = {"APP": "web"}
item = create_plugin_input_item(PLUGIN_INPUT_TYPE_DOCKER_STDOUT, stdout)
plugin = LogConfigPluginInput(inputs=[item])
print(plugin.to_dict())
```

`create_config_plugin_canal()` returns a binlog input with these
defaults:

- host `127.0.0.1`, port 3306, user `root`, flavor `mysql`
- server id 1205
- heartbeat 60, read timeout 90
- GTID, inserts, updates and deletes enabled
- charset `utf8`

## Project client

`slsconfig.project.LogProject` works with one project on a service
endpoint. By default, requests go over `http://`. Use an `https://`
endpoint to choose HTTPS. Setting `using_http` or
`LogProject.force_using_http` forces plain HTTP.

```python
from slsconfig.project import LogProject

access_key_id = "placeholder"
access_key_secret = "secret"
project = LogProject("my-project", "log.example.com", access_key_id, access_key_secret)

project.with_request_timeout(10).with_retry_timeout(30)

if not project.check_logstore_exist("app-logs"):
    project.create_log_store("app-logs", 7, 2, True, 16)

names = project.list_log_store()
configs, total = project.list_config(0, 100)
project.apply_config_to_machine_group("app-config", "app-servers")
```

Errors and retries:

- A status of 500, 502 or 503 is retried with growing back-off until the
  retry timeout runs out. The same applies to a network error.
- Any other non-200 status raises `LogError` at once. The error carries
  the service's `code`, `message`, `request_id` and `http_code`.
- When retries run out, or a request body cannot be encoded, the client
  raises `ClientError`.

The client has methods for each area:

- Logstores: `get_log_store` returns a dictionary. There are also
  `create_log_store_v2`, `update_log_store`, `update_log_store_v2` and
  `delete_log_store`.
- Machine groups: `list_machine_group`, `check_machine_group_exist`,
  `get_machine_group`, `create_machine_group`, `update_machine_group`
  and `delete_machine_group`.
  - Groups and logstores go in as dictionaries or as any object with
    `to_dict()`.
  - `update_machine_group` takes the group name from the `groupName`
    key.
- Configs as `LogConfig` objects: `get_config`, `create_config` and
  `update_config`.
- Configs as raw JSON strings: `get_config_string`,
  `create_config_string` and `update_config_string`.
- Other config operations: `delete_config` and `check_config_exist`.
- Links between configs and machine groups:
  `get_applied_machine_groups`, `get_applied_configs`,
  `apply_config_to_machine_group` and
  `remove_config_from_machine_group`.

You can pass another transport with the `transport=` argument, for
example in tests. A transport is any object that has a `timeout`
attribute and a `send(method, url, headers, body)` method that returns
a `Response`.

## ETL metadata

```python
from slsconfig.etl_meta import EtlMeta, EtlMetaStore

store = EtlMetaStore(project)
store.create(EtlMeta("xx-log", "my-key", "tag-1", {"region": "region-1"}))
meta = store.get("xx-log", "my-key")          # None when nothing matches
total, count, metas = store.list("xx-log", 0, 100)
total, count, names = store.list_names(0, 100)
store.delete("xx-log", "my-key")
```

`EtlMetaStore` also has `update` and `list_with_tag`.

## What this package does not do

- It does not sign requests. The access key pair is stored on the
  project, but no authorization header is computed from it. Requests
  carry only the security token set with `with_token`, so use the
  client with an endpoint or proxy that does not need signed requests.
- It has no support for writing or reading logs: no putting or pulling
  log groups, no shards, cursors, indexes or queries.
- It has no models for logstores or machine groups. They are handled as
  plain dictionaries.