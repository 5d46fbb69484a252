# hivedeploy

Building blocks for deploying NixOS system profiles to a set of machines
(a "hive"): node selection, deployment settings and secret keys, Nix
store paths and profiles, hosts reached over SSH or locally, checks of
the installed Nix, and progress display.

The operations that touch Nix run the Nix tools (`nix-instantiate`,
`nix-store`, `nix-env`, `nix-copy-closure`) and `ssh` as subprocesses,
so those must be on `PATH` wherever they are used. Everything that runs
a program is a coroutine.

## Installation

```
pip install hivedeploy
```

For development and tests:

```
pip install "hivedeploy[test]"
pytest
```

## Selecting nodes (`hivedeploy.node_filter`)

`NodeFilter` takes the same expression as an `--on` option: a
comma-separated list of glob patterns, OR'd together. A pattern that
starts with `@` matches a node's tags; any other pattern matches its
name.

```python
from hivedeploy.node_filter import NodeFilter
from hivedeploy.nodes import NodeName

names = [NodeName("lax-alpha"), NodeName("lax-beta"), NodeName("sfo-gamma")]
NodeFilter("lax-*").filter_node_names(names)
# {"lax-alpha", "lax-beta"}
```

Tag rules need deployment settings. `has_node_config_rules()` tells
whether a filter has any; `filter_node_configs` takes a mapping (or
pairs) of names to `NodeConfig` objects:

```python
from hivedeploy.nodes import NodeConfig

configs = {
    NodeName("alpha"): NodeConfig(tags=["web"]),
    NodeName("beta"): NodeConfig(tags=["router"]),
}
NodeFilter("@router,gamma-*").filter_node_configs(configs)
# {"beta"}
```

A blank filter matches nothing. An empty rule such as `"a,,b"` raises
`EmptyFilterRuleError`, and `filter_node_names` raises `UnknownError`
when the filter has a tag rule.

## Deployment settings and keys (`hivedeploy.nodes`)

- `NodeName` is a `str` that cannot be empty (`EmptyNodeNameError`).
- `NodeConfig.from_dict` reads a node's deployment settings as evaluated
  to JSON (`targetHost`, `targetUser`, `targetPort`,
  `allowLocalDeployment`, `buildOnTarget`, `tags`,
  `replaceUnknownProfiles`, `privilegeEscalationCommand`, `keys`);
  missing or mistyped fields raise `ValidationError`.
- `NodeConfig.validate()` raises `ValidationError` for an absolute or
  nested key name, a relative key destination, or an invalid Unix user
  or group name.
- A `Key` has exactly one source (`text`, `keyCommand` or `keyFile`),
  and `Key.read()` returns its contents as bytes. A failing key command
  raises `KeyCommandError`.
- `NixOptions(show_trace=..., builders=...).to_args()` gives the
  matching Nix command-line arguments.

## Store paths and profiles (`hivedeploy.store`)

`StorePath` accepts only paths under `/nix/store/`
(`InvalidStorePathError` otherwise). `into_derivation(Profile)` turns a
`.drv` path into a `StoreDerivation`, whose `realize(host)` and
`realize_remote(host)` build it and return a `Profile`. A `Profile`
gives its `activation_command(goal)` and can `create_gc_root(path)`.

## Hosts (`hivedeploy.hosts`)

`Ssh` and `Local` implement `Host`: they copy closures, realise
derivations, activate profiles and find the main system profile.
`Ssh.ssh([...])` builds the `ssh` command used for remote operations,
and `Ssh.run_command` runs a command on the host. Set `host.job` to an
object with `stdout(line)` and `stderr(line)` methods to receive command
output. `ssh_host_from_config` makes an `Ssh` host from a `NodeConfig`
that has a target host, using the current user when none is set.

## Running commands (`hivedeploy.process`)

`Command` holds an argument list and extra environment variables.
`passthrough`, `capture_output`, `capture_json` and
`capture_store_path` run one; a non-zero exit raises
`CommandFailedError`, and unparsable JSON raises `BadOutputError`.
`CommandExecution` runs a command with both streams captured and
forwarded line by line to a job.

## Checking the Nix installation (`hivedeploy.info`)

```python
import asyncio
from hivedeploy.info import NixCheck

check = asyncio.run(NixCheck.detect())
check.print_version_info()
check.print_flakes_info(required=False)
```

`NixCheck.require_flake_support()` raises `NoFlakesSupportError` when
the installed Nix is older than 2.4.

## Progress output (`hivedeploy.progress`, `hivedeploy.spinner`)

`PlainOutput` prints aligned `label | text` lines to standard error.
`SpinnerOutput` draws one live spinner per job plus one for the overall
run. `create_progress_output(verbose)` picks the plain output when
`verbose` is true or standard output is not a terminal. `get_sender()`
returns an `asyncio.Queue` (only on its first call); put `Print`,
`PrintMeta`, `HintLabelWidth` and `Complete` messages on it while
`run_until_completion()` runs.

## Errors (`hivedeploy.errors`)

All errors derive from `HiveError`. `run_wrapped(func, config_given)`
runs a function or coroutine function; on a `HiveError` it logs the
error, prints hints from `troubleshoot` (such as when both `flake.nix`
and `hive.nix` are present) and exits with code 1.

## What this package does not do

- It has no command-line program; it is a library.
- It does not evaluate hive configurations (`hive.nix` or a flake) to
  get node names or deployment settings; those must be supplied as
  already-evaluated data.
- It does not upload secret keys to hosts: `Host.upload_keys` raises
  `UnsupportedError` for both `Local` and `Ssh`.