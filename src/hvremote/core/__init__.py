# ═══════════════════════════════════════════════════════════════
# HVRemote v1.0 - Core
# Settings, logging and the exception hierarchy
# ═══════════════════════════════════════════════════════════════
