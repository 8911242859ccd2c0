from locust import HttpUser, task, between

# Truncated JPEG header; payload validity is left to the provider.
SAMPLE_IMAGE_DATA = "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQAAAQABAAD/2wBDAAgGBgcGBQgHBwcJCQgKDBQNDAsLDBkSEw8U"


class AgriScoutUser(HttpUser):
    # Simulates users waiting between 1 and 3 seconds between requests
    wait_time = between(1, 3)

    @task(1)
    def analyze(self):
        """Full pipeline including the Gemini call (or the fallback path if unconfigured)."""
        self.client.post(
            "/api/analyze",
            json={"imageData": SAMPLE_IMAGE_DATA, "context": "corn leaves, yellow spots"},
        )

    @task(5)
    def health(self):
        self.client.get("/api/health")
