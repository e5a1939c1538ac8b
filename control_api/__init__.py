"""Control API: relays user gestures into the editor's LiveKit room and serves events."""
