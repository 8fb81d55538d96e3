"""Domain layer: catalog matching, rollup and run orchestration."""
