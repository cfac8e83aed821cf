"""Settings package: configuration schema, paths and the :data:`SelfTracker.settings.lib.settings` API."""
