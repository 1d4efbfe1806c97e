"""Run the steward controllers in process against an in-memory store."""

import asyncio

from steward import (
    ControllerManager,
    InMemoryObjectStore,
    InMemoryTransport,
    StewardConfig,
)
from steward.apis import (
    Namespace,
    NamespaceTemplate,
    ObjectMeta,
    ResourceKey,
    Step,
    Tenant,
    TenantSpec,
    Workflow,
    WorkflowRun,
    WorkflowRunSpec,
)


async def tenant_example(manager: ControllerManager):
    """Create a tenant and let the controllers provision its namespace."""
    print("🏢 Tenant")

    await manager.store.create(
        Tenant(
            metadata=ObjectMeta(name="acme", namespace="tenants"),
            spec=TenantSpec(
                namespace_template=NamespaceTemplate(
                    metadata=ObjectMeta(name="acme-workloads")
                )
            ),
        )
    )


async def workflow_run_example(manager: ControllerManager):
    """Create a two-step workflow run."""
    print("🚀 Workflow run")

    await manager.store.create(Namespace(metadata=ObjectMeta(name="team-a")))
    await manager.store.create(
        WorkflowRun(
            metadata=ObjectMeta(name="nightly", namespace="team-a"),
            spec=WorkflowRunSpec(
                workflow=Workflow(
                    name="nightly",
                    parameters={"region": "eu"},
                    steps=[
                        Step(name="build", image="alpine:3", input=["make"]),
                        Step(name="deploy", depends_on=["build"], image="alpine:3"),
                    ],
                )
            ),
        )
    )


async def main():
    """Run examples."""
    print("🤖 Steward Examples\n")
    manager = ControllerManager(
        InMemoryObjectStore(), InMemoryTransport(), StewardConfig()
    )
    await tenant_example(manager)
    await workflow_run_example(manager)

    await manager.start(lifespan=1.0, resync=False)

    tenant = await manager.store.get(Tenant, ResourceKey("tenants", "acme"))
    print(f"✅ Tenant namespace: {tenant.status.namespace}")
    run = await manager.store.get(WorkflowRun, ResourceKey("team-a", "nightly"))
    print(f"✅ Workflow run status: {run.status.status.value}")
    for name, step in run.status.steps.items():
        print(f"   - {name}: {step.status.value}")
    print("\n🎉 Complete! See tests/ for more examples.")


if __name__ == "__main__":
    asyncio.run(main())
