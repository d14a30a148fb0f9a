"""Governance: the data product registration workflow.

The central governance account registers data products on behalf of producer
accounts through RegisterDataProductWorkflow:

  RegisterLocation → GrantAdminAccess → GrantProducerAccess → CreateDatabase →
  UpdateDatabaseOwnerMetadata → FanOutTables → PublishNotification

Provisioning steps run as Catalog Access activities, the notification as an
Event Bus activity. The control flow itself lives in plain Python
(state_machine, recovery, fan_out, registration) so it can be exercised
without a Temporal server.
"""
