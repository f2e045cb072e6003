"""Block Buddy: chat-driven custody of EVM wallets and native transfers."""

__version__ = "0.3.0"
