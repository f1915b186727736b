import asyncio

from teamchat.client.recorder import AudioCapture, AudioInput


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeCapture(AudioCapture):
    def __init__(self, data=b"OggS-fake-audio", broken=False):
        self.data = data
        self.broken = broken
        self.released = 0
        self.finished = False

    def finish(self) -> bytes:
        self.finished = True
        if self.broken:
            raise OSError("encoder crashed")
        return self.data

    def release(self) -> None:
        self.released += 1


class FakeMicrophone(AudioInput):
    def __init__(self, allow=True, delay=0.0, broken=False):
        self.allow = allow
        self.delay = delay
        self.broken = broken
        self.captures = []

    async def open(self) -> AudioCapture:
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.allow:
            raise PermissionError("denied")
        capture = FakeCapture(broken=self.broken)
        self.captures.append(capture)
        return capture
