"""CDK stacks and deploy-time helpers for the resources GraphQL API."""
