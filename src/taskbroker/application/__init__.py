"""Application layer – task dispatch and periodic scheduling."""
