"""Discord bot process: gateway client, handlers, commands, probes."""
