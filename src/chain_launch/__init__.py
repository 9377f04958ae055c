"""Local relay chain and parachain test network launcher."""
