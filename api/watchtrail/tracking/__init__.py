"""Progress calculations and episode reconciliation shared by server and client."""
