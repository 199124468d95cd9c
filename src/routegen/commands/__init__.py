"""Built-in ``routegen`` sub-commands, registered on the app in :mod:`routegen.app`."""
