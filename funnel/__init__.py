"""
Checkout funnel automation: drives a remote browsing session through
authenticate -> set location -> search -> customize -> add to cart on
third-party storefronts whose markup and timing are unstable.

Entry points: `funnel.cli.main` (command line) and
`funnel.runner.run_session` (programmatic).
"""
