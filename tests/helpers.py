def headers_for(user_id):
    return {"X-User-Id": user_id}


class FakeWebSocket:
    """Records frames sent by the connection registry."""

    def __init__(self, fail=False):
        self.accepted = False
        self.closed_with = None
        self.sent = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection is closed")
        self.sent.append(data)

    async def close(self, code=1000):
        self.closed_with = code

    def events(self, event_type=None):
        return [f for f in self.sent if event_type is None or f["type"] == event_type]
