"""Host collaborator contract: block snapshots, the editor protocol, and the block repository."""
