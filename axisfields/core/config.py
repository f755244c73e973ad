"""Package configuration.

Values come from the packaged ``axisfields.yaml``, then any yaml/json files in
``~/.config/axisfields`` (or the directory named by ``AXISFIELDS_CONFIG``), then
``AXISFIELDS_*`` environment variables, later sources winning. Keys read by the
package:

- ``default_axis``: axis used by ``build_schema`` when none is given
- ``default_dtype``: dtype used by ``allocate`` when none is given
- ``warn_on_copy``: warn when a non-array buffer is copied at bind time
- ``has_cupy``: enable cupy buffers, detected at import when left unset
"""

from __future__ import annotations

import ast
import importlib.util
import os
import threading
from collections.abc import Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any, Union

import yaml

no_default = "__no_default__"

ENV_PREFIX = "AXISFIELDS_"
PATH = Path(os.getenv("AXISFIELDS_CONFIG", "~/.config/axisfields")).expanduser().resolve()
paths = [PATH]
config: dict = {}
defaults: dict = {}

config_lock = threading.Lock()


class set:
    """Set configuration values, restoring the previous ones on exit

    Parameters
    ----------
    arg : mapping or None, optional
        Key-value pairs to set, dotted keys address nested values.
    **kwargs :
        More key-value pairs, ``__`` in a keyword is read as ``.``.

    Examples
    --------
    >>> with set(warn_on_copy=False):  # doctest: +SKIP
    ...     view = bind([1.0, 2.0], schema)

    Used without ``with`` the values stay set.
    """

    def __init__(self, arg: Union[Mapping, None] = None, config: dict = config, **kwargs):
        self.config = config
        self._undo: list[tuple[dict, str, Any]] = []

        items = dict(arg or {})
        items.update({k.replace("__", "."): v for k, v in kwargs.items()})
        with config_lock:
            for key, value in items.items():
                self._assign(key.split("."), value)

    def _assign(self, keys: Sequence[str], value: Any) -> None:
        d = self.config
        for key in keys[:-1]:
            if not isinstance(d.get(key), dict):
                self._undo.append((d, key, d.get(key, no_default)))
                d[key] = {}
            d = d[key]
        self._undo.append((d, keys[-1], d.get(keys[-1], no_default)))
        d[keys[-1]] = value

    def __enter__(self):
        return self.config

    def __exit__(self, type, value, traceback):
        with config_lock:
            for d, key, old in reversed(self._undo):
                if old is no_default:
                    d.pop(key, None)
                else:
                    d[key] = old


def get(key: str, default: Any = no_default, config: dict = config, override_with: Any = None) -> Any:
    """Get a config value, using '.' for nested access

    ``override_with`` is returned as is when it is not None, so keyword
    defaults read as ``axis = get("default_axis", override_with=axis)``.
    """
    if override_with is not None:
        return override_with
    result = config
    for k in key.split("."):
        try:
            result = result[k]
        except (TypeError, KeyError):
            if default is not no_default:
                return default
            raise
    return result


def merge(*dicts: Mapping) -> dict:
    """Merge nested dictionaries, later values win

    >>> merge({'x': 1, 'y': {'a': 2}}, {'y': {'b': 3}})
    {'x': 1, 'y': {'a': 2, 'b': 3}}
    """
    result: dict = {}
    for d in dicts:
        for k, v in d.items():
            if isinstance(v, Mapping) and isinstance(result.get(k), dict):
                result[k] = merge(result[k], v)
            elif isinstance(v, Mapping):
                result[k] = merge(v)
            else:
                result[k] = v
    return result


def collect_yaml(paths: Sequence[os.PathLike]) -> Iterator[dict]:
    """Parse every yaml or json file found in ``paths`` (files or directories)"""
    for path in map(Path, paths):
        if path.is_dir():
            files = sorted(p for p in path.iterdir() if p.suffix.lower() in (".json", ".yaml", ".yml"))
        elif path.exists():
            files = [path]
        else:
            continue
        for file in files:
            loaded = _load_config_file(file)
            if loaded is not None:
                yield loaded


def collect_env(env: Mapping[str, str] | None = None) -> dict:
    """Collect ``AXISFIELDS_FOO__BAR=value`` variables as ``{"foo": {"bar": value}}``

    Keys are lower-cased, ``__`` nests and values go through
    ``ast.literal_eval``. ``AXISFIELDS_CONFIG`` names the config directory and
    is skipped.
    """
    if env is None:
        env = os.environ

    result: dict = {}
    for name, value in env.items():
        if name.startswith(ENV_PREFIX) and name != "AXISFIELDS_CONFIG":
            *parents, leaf = name[len(ENV_PREFIX) :].lower().split("__")
            d = result
            for key in parents:
                d = d.setdefault(key, {})
            d[leaf] = interpret_value(value)
    return result


def interpret_value(value: str) -> Any:
    try:
        return ast.literal_eval(value)
    except (SyntaxError, ValueError):
        pass
    # yaml spellings of the python literals
    return {"none": None, "null": None, "false": False, "true": True}.get(value.lower(), value)


def collect(paths: Sequence[os.PathLike] = paths, env: Mapping[str, str] | None = None) -> dict:
    """Configuration from yaml files in ``paths`` and the environment"""
    return merge(*collect_yaml(paths), collect_env(env))


def refresh(config: dict = config, **kwargs) -> None:
    """Reset ``config`` to the packaged defaults, then re-read files and env variables"""
    with config_lock:
        config.clear()
        config.update(merge(defaults, collect(**kwargs)))


def _load_config_file(path: os.PathLike) -> dict | None:
    try:
        with open(path) as f:
            loaded = yaml.safe_load(f)
    except OSError:
        # unreadable files are skipped
        return None
    except yaml.YAMLError as exc:
        raise ValueError(f"An axisfields config file at {str(path)!r} is malformed:\n\n{exc}") from exc
    if loaded is not None and not isinstance(loaded, dict):
        raise ValueError(
            f"An axisfields config file at {str(path)!r} is malformed, the top level object "
            f"must be a dict, got a {type(loaded).__name__} instead"
        )
    return loaded


def _initialize() -> None:
    packaged = _load_config_file(Path(__file__).with_name("axisfields.yaml")) or {}
    if packaged.get("has_cupy") is None:
        packaged["has_cupy"] = importlib.util.find_spec("cupy") is not None
    defaults.update(packaged)
    refresh()


_initialize()
