"""Request controllers for the forward-auth gateway."""
