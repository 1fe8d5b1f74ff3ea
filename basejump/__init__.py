"""Basejump — rebase pull requests on demand from a ``/rebase`` comment."""
