"""Discovery session and collaborator interfaces."""
