"""Policy rules: default table, engine and risk scoring."""
