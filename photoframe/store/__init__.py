"""Album and telemetry storage."""
