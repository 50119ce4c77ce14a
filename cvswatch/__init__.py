"""cvswatch: track the state of working copies managed by the ``cvs`` client."""
