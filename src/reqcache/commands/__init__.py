"""Built-in CLI sub-commands for reqcache.

* :mod:`~reqcache.commands.cache` -- ``install``, ``activate``, ``status``,
  ``fetch``, and ``push``, registered directly on the root app.
* :mod:`~reqcache.commands.config` -- view and modify global settings.
"""
