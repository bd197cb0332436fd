"""orchestrator.integrations — External collaborator gateways.

All outbound calls to third-party systems go through a gateway in this
package, never via bare `requests` calls in services or blueprints. Every
gateway returns a structured result and never raises to the caller.

Current gateways:
  notification_gateway.NotificationGateway — webhook delivery of notifications
  connectivity_gateway.ConnectivityChecker — integration connectivity probes
"""
