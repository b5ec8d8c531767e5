"""Z21 LAN wire protocol: framing, command encoding and message parsing."""
