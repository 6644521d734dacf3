from locust import HttpUser, task, between

class EcoGuardUser(HttpUser):
    # Simulates users waiting between 1 and 3 seconds between requests
    wait_time = between(1, 3)

    @task(5)
    def load_home(self):
        # Renders the session page; no model call involved
        self.client.get("/")

    @task(2)
    def health(self):
        self.client.get("/health")

    @task(1)
    def load_openapi(self):
        """Simulates developers/tools fetching the API schema."""
        self.client.get("/openapi.json")
