"""
Print-shop Workflow Engine
Service layer.

Modules (leaf-first):
    - priority:             delivery date -> blue / yellow / red tier
    - stage_catalog:        admin-editable production stage list
    - workflow_state:       item state value object + effective department
    - workflow_rules:       (state, role) -> available actions
    - substage_sequencer:   per-item production step cursor
    - approval_loop:        sales <-> design/prepress customer approval round trip
    - outsource_lifecycle:  vendor job progression on outsourced items
    - transition_executor:  validate + apply an action, write the timeline entry
    - side_effects:         post-commit notification / inventory dispatch
    - order_service:        order CRUD, admin operations, item maintenance
"""
