"""Benchmark settings and command-line parsing."""

from __future__ import annotations

import getopt
import ipaddress
import re
from dataclasses import dataclass
from enum import Enum, IntEnum

_USAGE = """\
kvsbench [options] dst-ip:dst-port
Options:
  -t, --threads=COUNT   Number of sending threads [default 1].
  -C, --conns=COUNT     # connections / thread    [default 1].
  -p, --pending=NUM     Number of pend. req/conn. [default 1].
  -k, --key-size=BYTES  Key size in bytes         [default 32].
  -n, --key-num=COUNT   Number of keys            [default 1000].
  -u, --key-uniform     Uniform key distribution  [default]
  -z, --key-zipf=S      Zipf key distribution;
                        S is the zipf parameter.
  -v, --val-size=BYTES  Value size in bytes       [default 1024].
  -g, --get-prob=PROB   Probability of GET Reqs.  [default .9].
  -T, --time=SECS       Measurement time in [s].  [default 10].
  -w, --warmup=SECS     Warmup time [s].          [default 5].
  -c, --cooldown=SECS   Cooldown time [s].        [default 5].
  -s, --key-seed=SEED   Seed for key PRG.
  -o, --op-seed=SEED    Seed for operation PRG.
  -r, --trace=FILE      Write operation trace to file.
  -K, --keysteer        Key-based steering.
"""

_SHORT_OPTS = "t:C:p:k:n:uz:v:g:T:w:c:d:s:o:r:K"
_LONG_OPTS = [
    "threads=", "conns=", "pending=", "key-size=", "key-num=",
    "key-uniform", "key-zipf=", "val-size=", "get-prob=", "time=",
    "warmup=", "cooldown=", "delay=", "key-seed=", "op-seed=", "keysteer",
]
_LONG_TO_SHORT = {
    "--threads": "-t", "--conns": "-C", "--pending": "-p",
    "--key-size": "-k", "--key-num": "-n", "--key-uniform": "-u",
    "--key-zipf": "-z", "--val-size": "-v", "--get-prob": "-g",
    "--time": "-T", "--warmup": "-w", "--cooldown": "-c", "--delay": "-d",
    "--key-seed": "-s", "--op-seed": "-o", "--keysteer": "-K",
}

_DEC_RE = re.compile(r"\s*([+-]?)(\d+)\Z")
_AUTO_RE = re.compile(r"\s*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9]\d*)\Z")
_LEADING_RE = re.compile(r"\s*([+-]?)(\d*)")


class SettingsError(ValueError):
    """Raised when the command line cannot be turned into settings."""


class KeyDistribution(Enum):
    UNIFORM = "uniform"
    ZIPF = "zipf"


class ErrorId(IntEnum):
    SUCCESS = 0
    KEY_ENOENT = 1
    KEY_EEXIST = 2
    E2BIG = 3
    EINVAL = 4
    NOT_STORED = 5
    DELTA_BADVAL = 6
    UNKNOWN_CMD = 7
    ENOMEM = 8
    OTHER = 9
    MAX = 10


@dataclass
class Settings:
    """Parameters of one benchmark run."""

    dstip: int = 0
    dstport: int = 0
    threads: int = 1
    conns: int = 1
    pending: int = 1
    keynum: int = 1000
    zipf_s: float = 0.0
    get_prob: float = 0.9
    keydist: KeyDistribution = KeyDistribution.UNIFORM
    key_seed: int = 0x123457890123
    op_seed: int = 0x987654321098
    request_gap: int = 100 * 1000
    warmup_time: int = 5
    cooldown_time: int = 5
    run_time: int = 10
    keysize: int = 32
    valuesize: int = 1024
    batchsize: int = 32
    keybased: bool = False

    @property
    def address(self) -> str:
        """Destination IPv4 address in dotted form."""
        return str(ipaddress.IPv4Address(self.dstip))


def usage() -> str:
    """Return the usage text."""
    return _USAGE


def _signed(sign: str, value: int, bits: int) -> int:
    if sign == "-":
        value = -value
    return value & ((1 << bits) - 1)


def _parse_uint(text: str, bits: int, message: str) -> int:
    match = _DEC_RE.match(text)
    if not text or match is None:
        raise SettingsError(message)
    return _signed(match.group(1), int(match.group(2), 10), bits)


def _parse_seed(text: str, message: str) -> int:
    match = _AUTO_RE.match(text)
    if not text or match is None:
        raise SettingsError(message)
    digits = match.group(2)
    if digits[:2].lower() == "0x":
        value = int(digits[2:], 16)
    elif len(digits) > 1 and digits[0] == "0":
        value = int(digits[1:], 8)
    else:
        value = int(digits, 10)
    return _signed(match.group(1), value, 64)


def _parse_float(text: str, message: str) -> float:
    if not text or "_" in text or text.rstrip() != text:
        raise SettingsError(message)
    try:
        return float(text)
    except ValueError:
        pass
    stripped = text.lstrip()
    try:
        return float.fromhex(stripped)
    except ValueError:
        raise SettingsError(message) from None


def _leading_port(text: str) -> int:
    match = _LEADING_RE.match(text)
    digits = match.group(2) if match else ""
    if not digits:
        return 0
    return _signed(match.group(1), int(digits, 10), 16)


def parse_settings(argv: list[str]) -> Settings:
    """Parse command-line arguments (without the program name)."""
    s = Settings()
    try:
        opts, args = getopt.gnu_getopt(list(argv), _SHORT_OPTS, _LONG_OPTS)
    except getopt.GetoptError as exc:
        raise SettingsError(str(exc)) from exc

    for name, value in opts:
        opt = _LONG_TO_SHORT.get(name, name)
        if opt == "-t":
            s.threads = _parse_uint(value, 16, "threads needs to be a positive integer")
            if s.threads < 1:
                raise SettingsError("threads needs to be a positive integer")
        elif opt == "-C":
            s.conns = _parse_uint(value, 16, "conns needs to be a positive integer")
            if s.conns < 1:
                raise SettingsError("conns needs to be a positive integer")
        elif opt == "-p":
            s.pending = _parse_uint(value, 16, "pending needs to be a positive integer")
            if s.pending < 1:
                raise SettingsError("pending needs to be a positive integer")
        elif opt == "-k":
            s.keysize = _parse_uint(value, 16, "Key size needs to be a positive integer")
            if s.keysize < 1:
                raise SettingsError("Key size needs to be a positive integer")
        elif opt == "-n":
            s.keynum = _parse_uint(value, 32, "Key count needs to be a positive integer")
            if s.keynum < 1:
                raise SettingsError("Key count needs to be a positive integer")
        elif opt == "-v":
            s.valuesize = _parse_uint(value, 16, "Value size needs to be a positive integer")
            if s.valuesize < 1:
                raise SettingsError("Value size needs to be a positive integer")
        elif opt == "-u":
            s.keydist = KeyDistribution.UNIFORM
        elif opt == "-z":
            s.keydist = KeyDistribution.ZIPF
            s.zipf_s = _parse_float(
                value, "Zipf parameter needs to be a floating point number.")
        elif opt == "-g":
            message = ("GET probability needs to be a floating point number "
                       "between 0 and 1.")
            s.get_prob = _parse_float(value, message)
            if not 0 <= s.get_prob <= 1:
                raise SettingsError(message)
        elif opt == "-T":
            s.run_time = _parse_uint(value, 32, "Run time needs to be a positive integer")
            if s.run_time < 1:
                raise SettingsError("Run time needs to be a positive integer")
        elif opt == "-w":
            s.warmup_time = _parse_uint(
                value, 32, "Warmup time needs to be a positive integer")
        elif opt == "-c":
            s.cooldown_time = _parse_uint(
                value, 32, "Cool down time needs to be a positive integer")
        elif opt == "-d":
            s.request_gap = _parse_uint(value, 32, "Delay needs to be a positive integer")
        elif opt == "-s":
            s.key_seed = _parse_seed(value, "Key seed needs to be an integer.")
        elif opt == "-o":
            s.op_seed = _parse_seed(value, "Op seed needs to be an integer.")
        elif opt == "-K":
            s.keybased = True
        else:
            raise SettingsError(f"option {name} is not supported")

    if len(args) != 1:
        raise SettingsError("expected exactly one dst-ip:dst-port argument")

    ip_text, colon, port_text = args[0].partition(":")
    if not colon:
        raise SettingsError("Colon separating IP and port not found")
    try:
        s.dstip = int(ipaddress.IPv4Address(ip_text))
    except ValueError:
        raise SettingsError("Parsing ip address failed") from None
    s.dstport = _leading_port(port_text)
    return s