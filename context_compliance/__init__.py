"""Context compliance engine - keeps chat history within budget and protocol."""
