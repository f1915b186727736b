import asyncio
import logging

from teamchat.client.typing import TypingSignaler, TypingState

from tests.fakes import FakeClock


def capture_signals():
    sent = []

    async def send(is_typing):
        sent.append(is_typing)

    return sent, send


async def test_true_signal_is_throttled():
    sent, send = capture_signals()
    clock = FakeClock(100.0)
    signaler = TypingSignaler(send, debounce=2.0, idle_timeout=30, clock=clock)

    signaler.on_input()
    signaler.on_input()
    clock.now += 1.9
    signaler.on_input()
    await signaler.drain()
    assert sent == [True]
    assert signaler.state == TypingState.TYPING

    clock.now += 0.1
    signaler.on_input()
    await signaler.drain()
    assert sent == [True, True]
    signaler.reset()


async def test_idle_timeout_sends_false():
    sent, send = capture_signals()
    signaler = TypingSignaler(send, debounce=2.0, idle_timeout=0.05)

    signaler.on_input()
    await asyncio.sleep(0.15)
    await signaler.drain()

    assert sent == [True, False]
    assert signaler.state == TypingState.IDLE


async def test_keystroke_restarts_idle_timer():
    sent, send = capture_signals()
    signaler = TypingSignaler(send, debounce=2.0, idle_timeout=0.2)

    signaler.on_input()
    await asyncio.sleep(0.12)
    signaler.on_input()
    await asyncio.sleep(0.12)
    await signaler.drain()
    assert sent == [True]

    await asyncio.sleep(0.2)
    await signaler.drain()
    assert sent == [True, False]


async def test_reset_returns_to_idle_immediately():
    sent, send = capture_signals()
    signaler = TypingSignaler(send, debounce=2.0, idle_timeout=0.05)

    signaler.on_input()
    signaler.reset(notify=True)
    await asyncio.sleep(0.1)
    await signaler.drain()

    assert sent == [True, False]
    assert signaler.state == TypingState.IDLE


async def test_reset_without_notify_sends_nothing_more():
    sent, send = capture_signals()
    signaler = TypingSignaler(send, debounce=2.0, idle_timeout=0.05)

    signaler.on_input()
    signaler.reset()
    await asyncio.sleep(0.1)
    await signaler.drain()

    assert sent == [True]


async def test_send_failures_are_only_logged(caplog):
    async def send(is_typing):
        raise RuntimeError("network down")

    signaler = TypingSignaler(send, idle_timeout=30)
    with caplog.at_level(logging.ERROR, logger="teamchat.client.typing"):
        signaler.on_input()
        await signaler.drain()
    signaler.reset()

    assert "Failed to send typing indicator" in caplog.text
