class ListenerHandle:
    """Removes a callback from the list it was registered in."""

    def __init__(self, listeners: list, entry) -> None:
        self._listeners = listeners
        self._entry = entry

    async def unsubscribe(self) -> None:
        if self._entry in self._listeners:
            self._listeners.remove(self._entry)
