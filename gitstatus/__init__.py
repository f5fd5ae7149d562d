"""
gitstatus - Inventory of git working copies with a versioned status cache.

gitstatus walks a directory tree, finds every git repository in it,
collects status, unpushed commits, remote updates and history for each
one in parallel, and keeps the results in a local cache that survives
upgrades of its own record format.

I check on all your repos so you don't find out about that unpushed
commit from three laptops ago the hard way.
"""

__version__ = "0.6.0"
__author__ = "gitstatus Contributors"
