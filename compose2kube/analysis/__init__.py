"""Analysis stages: pattern classification, policy, security and cost."""
