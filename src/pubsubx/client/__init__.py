"""
Client-side components of PubSubX.
This package wires an interactive command source to a single
broker connection driven by an asyncio session loop.
"""
