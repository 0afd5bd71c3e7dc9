"""Schema served by the example project: a few queries and subscriptions to test against."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

import graphene


class Query(graphene.ObjectType):
    hello = graphene.String(name=graphene.String(default_value="world"))
    shout = graphene.String(text=graphene.String(required=True))

    @staticmethod
    def resolve_hello(root: Any, info: graphene.ResolveInfo, name: str) -> str:
        return f"Hello, {name}!"

    @staticmethod
    def resolve_shout(root: Any, info: graphene.ResolveInfo, text: str) -> str:
        return text.upper()


class Subscription(graphene.ObjectType):
    countdown = graphene.Int(
        start=graphene.Int(required=True),
        interval=graphene.Float(default_value=0.01),
    )
    silence = graphene.String()
    failing = graphene.Int()

    @staticmethod
    async def subscribe_countdown(
        root: Any, info: graphene.ResolveInfo, start: int, interval: float
    ) -> AsyncIterator[int]:
        for value in range(start, -1, -1):
            yield value
            await asyncio.sleep(interval)

    @staticmethod
    async def subscribe_silence(
        root: Any, info: graphene.ResolveInfo
    ) -> AsyncIterator[str]:
        # Never emits; ends only when the client stops it.
        await asyncio.Event().wait()
        yield "unreachable"

    @staticmethod
    async def subscribe_failing(
        root: Any, info: graphene.ResolveInfo
    ) -> AsyncIterator[int]:
        yield 1
        raise RuntimeError("Subscription source failed.")


schema = graphene.Schema(query=Query, subscription=Subscription)
