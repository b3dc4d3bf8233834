"""Project layer — on-disk config caches, local store, stash and lifecycle."""
