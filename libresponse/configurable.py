"""Typed key/value storage for the settings that control a response
calculation."""

import numbers
from typing import Any, Dict, Mapping, Optional

import numpy as np

from libresponse.core import ConfigurationError

_TRUE_STRINGS = ("true", "yes", "on", "1")
_FALSE_STRINGS = ("false", "no", "off", "0")

# The types that get_param knows how to coerce to.
KINDS = ("int", "unsigned", "bool", "str", "float")

DEFAULTS: Dict[str, Any] = {
    "print_level": 1,
    "solver": "diis",
    "maxiter": 60,
    "conv": 8,
    "hamiltonian": "rpa",
    "spin": "singlet",
    "_do_orthogonalization_canonical": False,
    "_frgm_response_idx": 0,
    "_mask_ediff_mo": False,
    "_mask_form_results_mo": False,
    "_mask_ediff_sentinel": 1.0,
    "diis_max_vecs": 8,
    "diis_start": 2,
    "save": 0,
    "read": 0,
}


def _to_bool(key: str, value: Any) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, numbers.Integral) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ConfigurationError(f"parameter '{key}' = {value!r} is not a boolean")


class Configurable:
    """Read-mostly store of named parameters.

    Values are kept as given and coerced on lookup, so that the same key can
    be set from a Python literal or from a string read out of an input file.
    """

    def __init__(self, params: Optional[Mapping[str, Any]] = None) -> None:
        self._params: Dict[str, Any] = {}
        if params is not None:
            self.update(params)

    def __repr__(self) -> str:
        return f"Configurable({self._params!r})"

    def __contains__(self, key: str) -> bool:
        return self.has_param(key)

    def has_param(self, key: str) -> bool:
        return key in self._params

    def set_param(self, key: str, value: Any) -> None:
        self._params[key] = value

    def update(self, params: Mapping[str, Any]) -> None:
        for key, value in params.items():
            self.set_param(key, value)

    def get_param(self, key: str, kind: str = "str") -> Any:
        """Get the value stored under `key`, coerced to `kind`.

        Parameters
        ----------
        key : str
        kind : {'int', 'unsigned', 'bool', 'str', 'float'}

        Returns
        -------
        int, bool, str, or float

        Raises
        ------
        ConfigurationError
            If the key is not present or its value cannot be coerced.
        """
        if kind not in KINDS:
            raise ConfigurationError(f"unknown parameter kind '{kind}'")
        if key not in self._params:
            raise ConfigurationError(f"parameter '{key}' is not set")
        value = self._params[key]
        if kind == "bool":
            return _to_bool(key, value)
        if kind == "str":
            return str(value)
        try:
            if kind == "float":
                return float(value)
            if isinstance(value, bool):
                raise TypeError
            if isinstance(value, float) and not value.is_integer():
                raise TypeError
            converted = int(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"parameter '{key}' = {value!r} is not {kind}") from e
        if kind == "unsigned" and converted < 0:
            raise ConfigurationError(f"parameter '{key}' = {value!r} must not be negative")
        return converted

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._params)


def set_defaults(cfg: Configurable) -> Configurable:
    """Fill in every parameter that hasn't been set by the caller."""
    for key, value in DEFAULTS.items():
        if not cfg.has_param(key):
            cfg.set_param(key, value)
    return cfg
