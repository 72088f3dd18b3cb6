"""Token-authorized actions linked from outbound email (approve, follow, unfollow, publish)."""
