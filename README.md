# resolvkit

A library for inspecting and changing the operating system's DNS resolver
configuration on Linux and BSD hosts.

## Modules

- `resolvkit.resolvconffile` reads and writes `resolv.conf(5)` files.
  `parse` and `parse_file` return a `ResolvConf` holding nameservers and
  search domains. They raise `ValueError` on malformed `nameserver` or
  `search` lines, and `parse_file` also refuses files over 10 KiB.
  `ResolvConf.render` and `ResolvConf.write` produce a file with a
  "generated by ctrld" header. `name_servers` and `name_servers_with_port`
  list the nameservers of a file, defaulting to `/etc/resolv.conf`; the
  second adds `:53` to each. Both return `[]` if the file cannot be read.
  `to_fqdn` and `without_trailing_dot` validate and normalise domain names.
- `resolvkit.osconfig` provides the `OSConfig` and `HostEntry` values and the
  abstract `OSConfigurator` interface, whose methods are `set_dns`,
  `supports_split_dns`, `get_base_config`, `close` and `mode`. It also has
  `GetBaseConfigNotSupportedError` and the helpers `read_resolv` and
  `write_resolv_conf`. `resolv_owner` reads the header comments of a
  `resolv.conf` and returns `"systemd-resolved"`, `"NetworkManager"`,
  `"resolvconf"` or `""`.
- `resolvkit.direct` provides `DirectManager`, which rewrites
  `/etc/resolv.conf` itself. Before writing, it moves the original file to
  `/etc/resolv.pre-ctrld-backup.conf`, and `close()` or an empty `OSConfig`
  puts it back. When a rename fails, as it does with a bind-mounted file, it
  copies the file instead. On Linux it can watch the file and calls
  `check_for_file_trample` when another program overwrites it; the result is
  in the `trampled` attribute. File access goes through the `WholeFileFS`
  interface. `DirectFS` implements it on the real file system, optionally
  below a path prefix, which is useful in tests. The module also has
  `is_resolved_running`, `restart_resolved` and
  `running_as_gui_desktop_user`.
- `resolvkit.resolvconf.resolvconf_style` tells which `resolvconf` is
  installed: `"debian"`, `"openresolv"`, or `""` when there is none.
- `resolvkit.debian_resolvconf.DebianResolvconfManager` and
  `resolvkit.openresolv.OpenresolvManager` configure DNS by running the
  `resolvconf` command. The Debian manager also installs a libc hook script,
  whose contents you pass in as `workaround_script`.
- `resolvkit.configurator.new_os_configurator` picks a manager from the
  owner of `/etc/resolv.conf`. If resolvconf owns it, you get the Debian or
  openresolv manager, matching the installed flavour. In every other case,
  you get `DirectManager`.
- `resolvkit.linux_mode.dns_mode` decides which mechanism a Linux host
  should use: `"direct"`, `"systemd-resolved"`, `"network-manager"`,
  `"debian-resolvconf"` or `"openresolv"`. It logs a one-line summary of how
  it decided. You supply the system probes through `OSConfigEnv`: D-Bus ping
  and property reads, NetworkManager checks, and the resolvconf style. The
  module also has `compare_versions` and `version_between` for version
  strings.
- `resolvkit.rcode.from_string` maps a DNS response code name to its number,
  ignoring case, and returns `-1` for unknown names.
- `resolvkit.dnscache` provides `LRUCache`, a thread-safe, size-bounded cache
  of `dnspython` messages. `new_key` builds its `CacheKey` from the first
  question (type, class, lower-cased name) and an upstream name. `new_value`
  wraps a message and its expiry time in a `CacheValue`.
- `resolvkit.netutil` provides `ParallelDialer`, which dials several
  addresses at once and returns the first socket that connects. It also has
  `is_ipv6`, `is_link_local_unicast_ipv6` and `ipv6_available`. Two functions
  probe the network once per process: `up`, which blocks until a bootstrap
  DNS server is reachable, and `supports_ipv6_listen_local`.
- `resolvkit.controld` is a client for the resolver utility API. It has
  `fetch_resolver_config`, `fetch_resolver_uid` (which takes a
  `UtilityOrgRequest`), `update_custom_last_failed` and `parse_raw_uid`,
  which splits `"<uid>/<client_id>"`. Results come back as
  `ResolverConfig`; errors the API reports raise `UtilityError`.

## What it does not do

- It has no configurator that programs systemd-resolved or NetworkManager
  over D-Bus. `dns_mode` can say that one of them should be used, but acting
  on that answer is left to the caller.
- It ships no D-Bus probes for `OSConfigEnv`; you provide them.
- There is no command-line tool; it is a library only.

## Installation

```
pip install resolvkit
```

## Example

```python
from resolvkit.resolvconffile import parse
from resolvkit.osconfig import OSConfig
from resolvkit.direct import DirectManager

conf = parse("nameserver 9.9.9.9\nsearch example.com\n")
print(conf.nameservers, conf.search_domains)

manager = DirectManager(print, None, False)
manager.set_dns(OSConfig(nameservers=conf.nameservers))
...
manager.close()  # restores the original /etc/resolv.conf
```

Changing the system configuration needs root privileges.

## Running the tests

```
pip install -e ".[test]"
pytest
```