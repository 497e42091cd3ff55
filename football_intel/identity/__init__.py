"""Team identity: normalization, curated ids, persistence and resolution."""
