"""Flow Dashboard: GitHub Actions workflow dashboard client."""
