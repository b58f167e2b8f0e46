"""SyncRules: context-governance backend for account and project rule hierarchies."""
