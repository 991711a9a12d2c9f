"""
OutputRegistry - the deployed stack's outputs, scoped to one test group.

Written wholesale once deployment completes (a later write replaces the
whole map), read many times by test bodies. The only guard needed is
"has anything been written yet".
"""

from types import MappingProxyType
from typing import Iterator, Mapping, Optional

from cloudspec.common.exceptions import OutputNotReadyError


class OutputRegistry(Mapping):

    def __init__(self, group_name: Optional[str] = None):
        self.group_name = group_name
        self._outputs: Optional[Mapping[str, str]] = None

    def set(self, outputs: Mapping[str, str]) -> None:
        """Replace the whole output map. Overwriting is allowed (last write wins)."""
        self._outputs = MappingProxyType(dict(outputs))

    @property
    def is_ready(self) -> bool:
        return self._outputs is not None

    def _require(self, name: Optional[str] = None) -> Mapping[str, str]:
        if self._outputs is None:
            raise OutputNotReadyError(name)
        return self._outputs

    def get(self, name: str, default=None) -> str:
        """
        Value of output ``name``.

        Raises:
            OutputNotReadyError: before the first set(), even when a default is given
        """
        return self._require(name).get(name, default)

    def __getitem__(self, name: str) -> str:
        outputs = self._require(name)
        if name not in outputs:
            raise KeyError(f"Output '{name}' was not declared; available: {sorted(outputs)}")
        return outputs[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._require())

    def __len__(self) -> int:
        return len(self._require())

    def __bool__(self) -> bool:
        # Truthiness never raises; an unpopulated registry is simply falsy.
        return bool(self._outputs)

    def as_dict(self) -> dict:
        return dict(self._require())

    def clear(self) -> None:
        """Forget the outputs when the group's context is torn down."""
        self._outputs = None

    def __repr__(self):
        state = dict(self._outputs) if self._outputs is not None else "<not ready>"
        return f"OutputRegistry({self.group_name!r}, {state})"
