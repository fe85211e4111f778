"""CronJob image sync controller (cjsync).

Watches Deployments and keeps related CronJobs in step with them:
 - finds CronJobs that belong to a Deployment (label, annotation or shared image)
 - copies the Deployment's container images into the CronJob job template
 - deletes Jobs already spawned from the stale template so the next run uses the new image

The reconcile core only talks to the cluster through the small Store/Reporter
capabilities, so it can be exercised without a live API server.
"""
