# kvsbench

kvsbench is a closed-loop load generator for key-value servers that speak the
memcached binary protocol over TCP. It first stores every key of a generated
key set on the server with SET requests. It then sends a mix of GET and SET
requests over many connections and prints, once a second, the throughput and
the latency percentiles, until it is interrupted.

## Installation

```
pip install .
```

## Usage

```
kvsbench [options] dst-ip:dst-port
```

The destination must be an IPv4 address followed by a colon and the port.

Options:

| Option | Meaning | Default |
| --- | --- | --- |
| `-t, --threads=COUNT` | number of load-generating cores (threads) | 1 |
| `-C, --conns=COUNT` | connections per core | 1 |
| `-p, --pending=NUM` | requests outstanding per core | 1 |
| `-k, --key-size=BYTES` | key size in bytes | 32 |
| `-n, --key-num=COUNT` | number of keys | 1000 |
| `-u, --key-uniform` | uniform key distribution | on |
| `-z, --key-zipf=S` | Zipf key distribution with parameter S | |
| `-v, --val-size=BYTES` | value size in bytes | 1024 |
| `-g, --get-prob=PROB` | probability of a GET request, 0 to 1 | 0.9 |
| `-s, --key-seed=SEED` | seed for key generation (decimal, `0x` hex or `0` octal) | `0x123457890123` |
| `-o, --op-seed=SEED` | seed for the operation mix | `0x987654321098` |
| `-T, --time=SECS` | measurement time (stored only) | 10 |
| `-w, --warmup=SECS` | warm-up time (stored only) | 5 |
| `-c, --cooldown=SECS` | cool-down time (stored only) | 5 |
| `-d, --delay=NANOS` | gap between requests (stored only) | 100000 |
| `-K, --keysteer` | key-based steering (stored only) | off |

Invalid options or values print an error and the usage text, and the command
exits with status 1. Ctrl-C ends a run with status 0.

Example, against a server on the local machine:

```
kvsbench -t 2 -C 4 -p 8 -z 0.9 127.0.0.1:11211
```

After the keys are stored the command prints `Preloading completed`, then one
report line per second:

```
TP: total=0.1234 mops  50p=12 us  90p=20 us  95p=25 us  99p=40 us  99.9p=80 us  99.99p=120 us
```

Throughput counts successful responses only. Latencies are kept in 1 µs
buckets; a percentile of `-1` means the value lies in the overflow bucket
(4095 µs or more).

## What it does not do

- Runs do not end by themselves: `--time`, `--warmup`, `--cooldown` and
  `--delay` are parsed and kept in `Settings`, but the benchmark reports until
  interrupted and sends requests without a gap.
- `--keysteer` is recorded but changes nothing.
- No operation trace is written; `-r`/`--trace` is rejected as unsupported.
- Only TCP over IPv4 is used. `UdpHeader` can pack and unpack UDP frame
  headers, but no UDP client exists.

## Library use

- `kvsbench.rng.Rng`: a 48-bit linear congruential generator (`gen32`,
  `gend`, `gen_bytes`) that builds keys and picks operations, so runs can be
  repeated exactly.
- `kvsbench.protocol`: the `Magic`, `Command` and `ResponseStatus` constants,
  `RequestHeader`, `ResponseHeader` and `UdpHeader` with `pack`/`unpack`, the
  request builders `build_get_request` and `build_set_request`, and
  `ProtocolError` for malformed packets.
- `kvsbench.settings`: `parse_settings(argv)` turns a command line (without
  the program name) into a `Settings` object and raises `SettingsError` on bad
  input; `usage()` returns the usage text.
- `kvsbench.workload`: `Workload(settings)` holds the generated keys with their
  uniform or Zipf cumulative distribution; `Workload.core()` gives a
  `WorkloadCore` whose `next_op()` returns a `(Key, Operation)` pair.
  `generate_keys`, `distribute_uniform`, `distribute_zipf` and `draw_key` are
  available on their own.
- `kvsbench.stats`: `LatencyHistogram` (`record`, `merge`, `clear`, `total`,
  `fraction_buckets`), `bucket_value`, `CoreStats` with `take()` to read and
  reset counters, and `format_report` for the report line.
- `kvsbench.connection`: `open_connection(address, port)` starts a
  non-blocking TCP connection with Nagle's algorithm off; `Connection` buffers
  requests (`queue`, `flush`) and parses responses (`receive`, `feed`,
  `responses`).
- `kvsbench.bench`: `Core` drives one core's connections, and
  `run_benchmark(settings, intervals)` runs a whole benchmark, printing and
  returning `intervals` report lines (or running until interrupted when
  `intervals` is `None`).

## Running the tests

```
pip install .[test]
pytest
```