"""HTTP API for FAAE Projetos core."""
