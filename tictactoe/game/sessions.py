from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Binding:
    room_code: str
    symbol: str


class SessionRegistry:
    """
    Which room and symbol each live connection plays as.
    Process-local: lost on restart, clients re-join to rebuild it.
    """

    def __init__(self):
        self._bindings: Dict[str, Binding] = {}
        self._rooms: Dict[str, List[str]] = {}

    def bind(self, connection_id: str, room_code: str, symbol: str) -> Binding:
        self.unbind(connection_id)
        binding = Binding(room_code, symbol)
        self._bindings[connection_id] = binding
        self._rooms.setdefault(room_code, []).append(connection_id)
        return binding

    def lookup(self, connection_id: str) -> Optional[Binding]:
        return self._bindings.get(connection_id)

    def unbind(self, connection_id: str) -> Optional[Binding]:
        binding = self._bindings.pop(connection_id, None)
        if binding is None:
            return None
        members = self._rooms.get(binding.room_code, [])
        if connection_id in members:
            members.remove(connection_id)
        if not members:
            self._rooms.pop(binding.room_code, None)
        return binding

    def members(self, room_code: str) -> List[str]:
        return list(self._rooms.get(room_code, []))

    def __len__(self):
        return len(self._bindings)
